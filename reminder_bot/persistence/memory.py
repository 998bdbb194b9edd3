import asyncio
from datetime import datetime

from reminder_bot.helpers.config_models.database import MemoryModel
from reminder_bot.helpers.logging import logger
from reminder_bot.models.readiness import ReadinessEnum
from reminder_bot.models.reminder import ReminderModel, ReminderPatchModel
from reminder_bot.persistence.istore import IStore


class MemoryStore(IStore):
    """
    A simple in-memory store.

    Records are kept as copies, callers never hold a reference to the stored object. A single lock serializes the mutations, which makes each of them atomic.
    """

    _config: MemoryModel
    _lock: asyncio.Lock
    _reminders: dict[str, ReminderModel]

    def __init__(self, config: MemoryModel):
        logger.warning(
            "Using memory store, reminders are lost on restart, prefer SQLite"
        )
        self._config = config
        self._lock = asyncio.Lock()
        self._reminders = {}

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the memory store.
        """
        return ReadinessEnum.OK  # Always ready, it's memory :)

    async def reminder_create(self, reminder: ReminderModel) -> ReminderModel:
        logger.debug("Saving reminder %s", reminder.reminder_id)
        async with self._lock:
            self._reminders[reminder.reminder_id] = reminder.model_copy()
        return reminder

    async def reminder_get(self, reminder_id: str) -> ReminderModel | None:
        reminder = self._reminders.get(reminder_id)
        return reminder.model_copy() if reminder else None

    async def reminder_search_pending(self, owner_id: str) -> list[ReminderModel]:
        reminders = [
            reminder.model_copy()
            for reminder in self._reminders.values()
            if reminder.owner_id == owner_id and not reminder.is_completed
        ]
        return sorted(reminders, key=lambda reminder: reminder.due_at)

    async def reminder_search_due(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> list[ReminderModel]:
        return [
            reminder.model_copy()
            for reminder in self._reminders.values()
            if window_start < reminder.due_at <= window_end
            and not reminder.is_notified
            and not reminder.is_completed
        ]

    async def reminder_update(
        self,
        reminder_id: str,
        owner_id: str,
        patch: ReminderPatchModel,
        expected: ReminderPatchModel | None = None,
    ) -> ReminderModel | None:
        if not patch.as_flags():
            raise ValueError("Patch is empty")

        async with self._lock:
            reminder = self._reminders.get(reminder_id)
            if not reminder or reminder.owner_id != owner_id:
                return None

            # Compare, then set
            for field, value in (expected.as_flags() if expected else {}).items():
                if getattr(reminder, field) != value:
                    logger.debug(
                        "Reminder %s not updated, %s is not %s",
                        reminder_id,
                        field,
                        value,
                    )
                    return None
            updated = reminder.model_copy(update=patch.as_flags())
            self._reminders[reminder_id] = updated

        return updated.model_copy()

    async def reminder_delete(
        self,
        reminder_id: str,
        owner_id: str,
    ) -> ReminderModel | None:
        async with self._lock:
            reminder = self._reminders.get(reminder_id)
            if not reminder or reminder.owner_id != owner_id:
                return None
            del self._reminders[reminder_id]
        return reminder
