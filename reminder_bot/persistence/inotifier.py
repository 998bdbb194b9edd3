from abc import ABC, abstractmethod

from reminder_bot.helpers.monitoring import start_as_current_span
from reminder_bot.models.readiness import ReadinessEnum


class INotifier(ABC):
    @abstractmethod
    @start_as_current_span("notifier_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("notifier_push")
    async def push(
        self,
        content: str,
        owner_id: str,
        retry_key: str | None = None,
    ) -> bool:
        """
        Push a message to a user, outside of any conversation.

        `retry_key` identifies the message, the transport uses it to drop duplicates when the same message is pushed again. Returns `True` if the message was accepted.
        """

    @abstractmethod
    @start_as_current_span("notifier_reply")
    async def reply(
        self,
        content: str,
        reply_token: str,
    ) -> bool:
        """
        Answer to an inbound message.
        """
