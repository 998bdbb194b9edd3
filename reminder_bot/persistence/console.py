from reminder_bot.helpers.logging import logger
from reminder_bot.models.readiness import ReadinessEnum
from reminder_bot.persistence.inotifier import INotifier


class ConsoleNotifier(INotifier):
    def __init__(self):
        logger.warning("Using console as notifier, no real messages will be sent")

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the console notifier.
        """
        return ReadinessEnum.OK  # Always ready, it's a log line :)

    async def push(
        self,
        content: str,
        owner_id: str,
        retry_key: str | None = None,
    ) -> bool:
        logger.info("🔔 Push to %s (%s): %s", owner_id, retry_key, content)
        return True

    async def reply(
        self,
        content: str,
        reply_token: str,
    ) -> bool:
        logger.info("💬 Reply %s: %s", reply_token, content)
        return True
