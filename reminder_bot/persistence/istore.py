from abc import ABC, abstractmethod
from datetime import datetime

from reminder_bot.helpers.monitoring import start_as_current_span
from reminder_bot.models.readiness import ReadinessEnum
from reminder_bot.models.reminder import ReminderModel, ReminderPatchModel


class IStore(ABC):
    """
    Reminder store.

    Every operation is atomic at the single record level. Mutations always match on the owner, a record owned by someone else behaves as missing.
    """

    @abstractmethod
    @start_as_current_span("store_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("store_reminder_create")
    async def reminder_create(
        self,
        reminder: ReminderModel,
    ) -> ReminderModel:
        pass

    @abstractmethod
    @start_as_current_span("store_reminder_get")
    async def reminder_get(
        self,
        reminder_id: str,
    ) -> ReminderModel | None:
        pass

    @abstractmethod
    @start_as_current_span("store_reminder_search_pending")
    async def reminder_search_pending(
        self,
        owner_id: str,
    ) -> list[ReminderModel]:
        """
        List the reminders of an owner which are not completed, ordered by due time ascending.
        """

    @abstractmethod
    @start_as_current_span("store_reminder_search_due")
    async def reminder_search_due(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> list[ReminderModel]:
        """
        List the reminders due in `(window_start, window_end]`, neither notified nor completed.
        """

    @abstractmethod
    @start_as_current_span("store_reminder_update")
    async def reminder_update(
        self,
        reminder_id: str,
        owner_id: str,
        patch: ReminderPatchModel,
        expected: ReminderPatchModel | None = None,
    ) -> ReminderModel | None:
        """
        Conditionally update the flags of a reminder.

        The update applies only if the reminder exists, is owned by `owner_id`, and every flag of `expected` still holds at write time. Returns the updated reminder, or `None` if nothing matched.

        Raises `ValueError` if `patch` sets no flag.
        """

    @abstractmethod
    @start_as_current_span("store_reminder_delete")
    async def reminder_delete(
        self,
        reminder_id: str,
        owner_id: str,
    ) -> ReminderModel | None:
        """
        Delete a reminder owned by `owner_id`.

        Returns the deleted reminder, or `None` if nothing was removed.
        """
