import re
from datetime import datetime
from textwrap import dedent

from pytz.tzinfo import BaseTzInfo

from reminder_bot.helpers.errors import (
    BackendUnavailableError,
    InvalidDateTimeError,
    ReminderNotFoundError,
    ReminderParseError,
    ReminderValidationError,
)
from reminder_bot.helpers.logging import logger
from reminder_bot.helpers.monitoring import start_as_current_span
from reminder_bot.helpers.reminder_lifecycle import (
    complete_reminder,
    create_reminder_from_text,
    delete_reminder,
    list_reminders,
)
from reminder_bot.persistence.istore import IStore

_COMPLETE_PATTERN = re.compile(r"(?:完成|done)\s+(?P<reminder_id>\S+)", re.IGNORECASE)
_DELETE_PATTERN = re.compile(r"(?:刪除|delete)\s+(?P<reminder_id>\S+)", re.IGNORECASE)
_HELP_COMMANDS = {"說明", "help"}
_LIST_COMMANDS = {"列表", "list"}

HELP_TEXT = dedent("""
    待辦事項機器人使用說明：

    1. 新增待辦事項：
       格式：月/日 時:分 內容
       範例：3/20 9:00 A廠商開會

    2. 查看待辦清單：
       輸入「列表」或點選選單中的列表按鈕

    3. 其他命令：
       - 完成 [ID]：標記待辦事項為已完成
       - 刪除 [ID]：刪除待辦事項

    提醒：本機器人會在事件發生前1小時發送通知
""").strip()

USAGE_TEXT = dedent("""
    您可以使用以下格式添加待辦事項：
    日期 時間 內容
    例如：3/20 9:00 A廠商開會

    其他命令：
    - 列表：查看所有待辦事項
    - 完成 [ID]：標記待辦事項為已完成
    - 刪除 [ID]：刪除待辦事項
""").strip()


@start_as_current_span("command_handle")
async def handle_command(
    store: IStore,
    owner_id: str,
    text: str,
    now: datetime,
    tz: BaseTzInfo,
) -> str:
    """
    Route a chat message to the matching reminder operation and return the reply text.

    Order: reminder creation, list, complete, delete, help. Anything else gets the usage text. Errors are answered with a fixed sentence, internal details stay in the logs.
    """
    text = text.strip()

    # Creation is tried first, the parser tells if the text is a reminder
    try:
        created = await create_reminder_from_text(
            now=now,
            owner_id=owner_id,
            raw_text=text,
            store=store,
            tz=tz,
        )
        return f"已新增待辦事項：\n{created.due_at_local} {created.body}\n提醒ID: {created.reminder_id}"
    except ReminderParseError:
        pass
    except InvalidDateTimeError:
        logger.info("Invalid date in reminder command")
        return "日期或時間無效，請確認月份、日期與時間。\n例如：3/20 9:00 A廠商開會"
    except ReminderValidationError:
        return "格式錯誤，請使用：日期 時間 內容\n例如：3/20 9:00 A廠商開會"
    except BackendUnavailableError:
        return "新增待辦事項時發生錯誤，請稍後再試。"

    if text.lower() in _LIST_COMMANDS:
        return await _list_command(store, owner_id, tz)

    if match := _COMPLETE_PATTERN.fullmatch(text):
        return await _complete_command(store, owner_id, match.group("reminder_id"))

    if match := _DELETE_PATTERN.fullmatch(text):
        return await _delete_command(store, owner_id, match.group("reminder_id"))

    if text.lower() in _HELP_COMMANDS:
        return HELP_TEXT

    return USAGE_TEXT


async def _list_command(store: IStore, owner_id: str, tz: BaseTzInfo) -> str:
    try:
        items = await list_reminders(
            owner_id=owner_id,
            store=store,
            tz=tz,
        )
    except BackendUnavailableError:
        return "獲取待辦事項列表時發生錯誤，請稍後再試。"

    if not items:
        return "您目前沒有待辦事項。"

    lines = "\n\n".join(
        f"{item.index}. [{item.due_at_local}] {item.body}\nID: {item.reminder_id}"
        for item in items
    )
    return f"您的待辦事項：\n{lines}"


async def _complete_command(store: IStore, owner_id: str, reminder_id: str) -> str:
    try:
        reminder = await complete_reminder(
            owner_id=owner_id,
            reminder_id=reminder_id,
            store=store,
        )
    except ReminderNotFoundError:
        return "找不到該待辦事項或您無權限修改。"
    except BackendUnavailableError:
        return "標記待辦事項時發生錯誤，請稍後再試。"
    return f"已完成：{reminder.body}"


async def _delete_command(store: IStore, owner_id: str, reminder_id: str) -> str:
    try:
        reminder = await delete_reminder(
            owner_id=owner_id,
            reminder_id=reminder_id,
            store=store,
        )
    except ReminderNotFoundError:
        return "找不到該待辦事項或您無權限刪除。"
    except BackendUnavailableError:
        return "刪除待辦事項時發生錯誤，請稍後再試。"
    return f"已刪除：{reminder.body}"
