from datetime import UTC, datetime

import pytest
from pytest_assume.plugin import assume
from pytz.tzinfo import BaseTzInfo

from reminder_bot.helpers.commands import HELP_TEXT, USAGE_TEXT, handle_command
from reminder_bot.helpers.reminder_lifecycle import list_pending
from reminder_bot.persistence.memory import MemoryStore
from tests.conftest import BrokenStore

# 2024-03-01 12:00 in Taipei
_NOW = datetime(2024, 3, 1, 4, 0, tzinfo=UTC)


@pytest.mark.asyncio(loop_scope="session")
async def test_create(
    memory_store: MemoryStore,
    owner_id: str,
    tz: BaseTzInfo,
) -> None:
    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=memory_store,
        text="3/20 9:00 A廠商開會",
        tz=tz,
    )
    reminders = await list_pending(memory_store, owner_id)
    assert len(reminders) == 1
    assert reply == f"已新增待辦事項：\n2024/03/20 09:00 A廠商開會\n提醒ID: {reminders[0].reminder_id}"


@pytest.mark.asyncio(loop_scope="session")
async def test_create_invalid_date(
    memory_store: MemoryStore,
    owner_id: str,
    tz: BaseTzInfo,
) -> None:
    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=memory_store,
        text="2/30 9:00 impossible",
        tz=tz,
    )
    assume(reply.startswith("日期或時間無效"))
    assume(await list_pending(memory_store, owner_id) == [])


@pytest.mark.asyncio(loop_scope="session")
async def test_create_multi_line(
    memory_store: MemoryStore,
    owner_id: str,
    tz: BaseTzInfo,
) -> None:
    """
    A reminder on several lines gets the format error, not the usage text.
    """
    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=memory_store,
        text="3/20 9:00 A廠商開會\n帶簡報",
        tz=tz,
    )
    assume(reply == "格式錯誤，請使用：日期 時間 內容\n例如：3/20 9:00 A廠商開會")
    assume(reply != USAGE_TEXT)
    assume(await list_pending(memory_store, owner_id) == [])


@pytest.mark.asyncio(loop_scope="session")
async def test_list(
    memory_store: MemoryStore,
    owner_id: str,
    tz: BaseTzInfo,
) -> None:
    # Empty
    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=memory_store,
        text="列表",
        tz=tz,
    )
    assume(reply == "您目前沒有待辦事項。")

    # Two reminders, created out of order
    for text in ("3/25 14:30 second", "3/20 9:00 first"):
        await handle_command(
            now=_NOW,
            owner_id=owner_id,
            store=memory_store,
            text=text,
            tz=tz,
        )
    first, second = await list_pending(memory_store, owner_id)

    for command in ("列表", "list", " LIST "):
        reply = await handle_command(
            now=_NOW,
            owner_id=owner_id,
            store=memory_store,
            text=command,
            tz=tz,
        )
        assume(
            reply
            == f"您的待辦事項：\n1. [03/20 09:00] first\nID: {first.reminder_id}\n\n2. [03/25 14:30] second\nID: {second.reminder_id}"
        )


@pytest.mark.asyncio(loop_scope="session")
async def test_complete(
    memory_store: MemoryStore,
    owner_id: str,
    other_owner_id: str,
    tz: BaseTzInfo,
) -> None:
    await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=memory_store,
        text="3/20 9:00 A廠商開會",
        tz=tz,
    )
    (reminder,) = await list_pending(memory_store, owner_id)

    # Someone else
    reply = await handle_command(
        now=_NOW,
        owner_id=other_owner_id,
        store=memory_store,
        text=f"完成 {reminder.reminder_id}",
        tz=tz,
    )
    assume(reply == "找不到該待辦事項或您無權限修改。")

    # Owner
    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=memory_store,
        text=f"完成 {reminder.reminder_id}",
        tz=tz,
    )
    assume(reply == "已完成：A廠商開會")
    assume(await list_pending(memory_store, owner_id) == [])

    # Twice
    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=memory_store,
        text=f"done {reminder.reminder_id}",
        tz=tz,
    )
    assume(reply == "找不到該待辦事項或您無權限修改。")


@pytest.mark.asyncio(loop_scope="session")
async def test_delete(
    memory_store: MemoryStore,
    owner_id: str,
    other_owner_id: str,
    tz: BaseTzInfo,
) -> None:
    await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=memory_store,
        text="3/20 9:00 A廠商開會",
        tz=tz,
    )
    (reminder,) = await list_pending(memory_store, owner_id)

    # Someone else
    reply = await handle_command(
        now=_NOW,
        owner_id=other_owner_id,
        store=memory_store,
        text=f"刪除 {reminder.reminder_id}",
        tz=tz,
    )
    assume(reply == "找不到該待辦事項或您無權限刪除。")
    assume(await memory_store.reminder_get(reminder.reminder_id) is not None)

    # Owner
    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=memory_store,
        text=f"delete {reminder.reminder_id}",
        tz=tz,
    )
    assume(reply == "已刪除：A廠商開會")
    assume(await memory_store.reminder_get(reminder.reminder_id) is None)


@pytest.mark.parametrize(
    "text, expected",
    [
        pytest.param("說明", HELP_TEXT, id="help_zh"),
        pytest.param("help", HELP_TEXT, id="help_en"),
        pytest.param("hello", USAGE_TEXT, id="unknown"),
        pytest.param("3/20 9:00", USAGE_TEXT, id="missing_body"),
        pytest.param("完成", USAGE_TEXT, id="complete_without_id"),
        pytest.param("", USAGE_TEXT, id="empty"),
    ],
)
@pytest.mark.asyncio(loop_scope="session")
async def test_static_replies(
    expected: str,
    memory_store: MemoryStore,
    owner_id: str,
    text: str,
    tz: BaseTzInfo,
) -> None:
    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=memory_store,
        text=text,
        tz=tz,
    )
    assume(reply == expected)
    assume(await list_pending(memory_store, owner_id) == [])


@pytest.mark.asyncio(loop_scope="session")
async def test_backend_unavailable(
    owner_id: str,
    tz: BaseTzInfo,
) -> None:
    """
    Store failures are answered with a fixed sentence, details are not leaked.
    """
    store = BrokenStore()

    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=store,
        text="3/20 9:00 A廠商開會",
        tz=tz,
    )
    assume(reply == "新增待辦事項時發生錯誤，請稍後再試。")

    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=store,
        text="列表",
        tz=tz,
    )
    assume(reply == "獲取待辦事項列表時發生錯誤，請稍後再試。")

    reply = await handle_command(
        now=_NOW,
        owner_id=owner_id,
        store=store,
        text="完成 any",
        tz=tz,
    )
    assume(reply == "標記待辦事項時發生錯誤，請稍後再試。")
    assume("Disk" not in reply)
