# Mock environment variables
import json
from os import environ

environ["CONFIG_JSON"] = json.dumps(
    {
        "api": {
            "secret_key": "test-secret-key",
        },
        "database": {
            "mode": "memory",
        },
        "monitoring": {
            "logging": {
                "app_level": "DEBUG",
            },
        },
        "notification": {
            "mode": "console",
        },
        "reminder": {
            "timezone": "Asia/Taipei",
        },
    }
)


# General imports
import asyncio
from collections.abc import Iterable
from datetime import datetime
from uuid import uuid4

import pytest
from pytz.tzinfo import BaseTzInfo

from reminder_bot.helpers.config import CONFIG
from reminder_bot.helpers.config_models.database import MemoryModel, SqliteModel
from reminder_bot.models.readiness import ReadinessEnum
from reminder_bot.models.reminder import ReminderModel, ReminderPatchModel
from reminder_bot.persistence.inotifier import INotifier
from reminder_bot.persistence.istore import IStore
from reminder_bot.persistence.memory import MemoryStore
from reminder_bot.persistence.sqlite import SqliteStore


class NotifierMock(INotifier):
    """
    Notifier recording the pushes, with per-owner failure modes.
    """

    _delay_sec: float
    _failing_owners: set[str]
    _raising_owners: set[str]
    _slow_owners: set[str]

    pushes: list[tuple[str, str]]
    replies: list[tuple[str, str]]

    def __init__(
        self,
        failing_owners: Iterable[str] = (),
        raising_owners: Iterable[str] = (),
        slow_owners: Iterable[str] = (),
        delay_sec: float = 0,
    ) -> None:
        self._delay_sec = delay_sec
        self._failing_owners = set(failing_owners)
        self._raising_owners = set(raising_owners)
        self._slow_owners = set(slow_owners)
        self.pushes = []
        self.replies = []

    async def readiness(self) -> ReadinessEnum:
        return ReadinessEnum.OK

    async def push(
        self,
        content: str,
        owner_id: str,
        retry_key: str | None = None,  # noqa: ARG002
    ) -> bool:
        if owner_id in self._slow_owners:
            await asyncio.sleep(self._delay_sec)
        if owner_id in self._raising_owners:
            raise ConnectionError("Connection reset by peer")
        if owner_id in self._failing_owners:
            return False
        self.pushes.append((owner_id, content))
        return True

    async def reply(
        self,
        content: str,
        reply_token: str,
    ) -> bool:
        self.replies.append((reply_token, content))
        return True


class BrokenStore(MemoryStore):
    """
    Store failing on every call, like a database gone away.
    """

    def __init__(self) -> None:
        super().__init__(MemoryModel())

    async def reminder_create(self, reminder: ReminderModel) -> ReminderModel:
        raise RuntimeError("Disk I/O error")

    async def reminder_search_pending(self, owner_id: str) -> list[ReminderModel]:
        raise RuntimeError("Disk I/O error")

    async def reminder_search_due(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> list[ReminderModel]:
        raise RuntimeError("Disk I/O error")

    async def reminder_update(
        self,
        reminder_id: str,
        owner_id: str,
        patch: ReminderPatchModel,
        expected: ReminderPatchModel | None = None,
    ) -> ReminderModel | None:
        raise RuntimeError("Disk I/O error")


@pytest.fixture
def tz() -> BaseTzInfo:
    return CONFIG.reminder.timezone.tz()


@pytest.fixture
def owner_id() -> str:
    return f"U{uuid4().hex}"


@pytest.fixture
def other_owner_id() -> str:
    return f"U{uuid4().hex}"


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore(MemoryModel())


@pytest.fixture(
    params=["memory", "sqlite"],
)
def store(request: pytest.FixtureRequest, tmp_path) -> IStore:
    """
    Each store implementation, empty.
    """
    if request.param == "sqlite":
        return SqliteStore(SqliteModel(path=str(tmp_path / "reminders")))
    return MemoryStore(MemoryModel())


@pytest.fixture
def notifier() -> NotifierMock:
    return NotifierMock()
