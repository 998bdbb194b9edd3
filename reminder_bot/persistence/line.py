import asyncio
from base64 import b64encode
from hashlib import sha256
from hmac import HMAC, compare_digest
from http import HTTPStatus
from typing import Any
from uuid import NAMESPACE_URL, uuid5

from aiohttp import ClientError
from aiohttp_retry import RetryClient

from reminder_bot.helpers.config_models.notification import LineModel
from reminder_bot.helpers.http import line_http
from reminder_bot.helpers.logging import logger
from reminder_bot.models.readiness import ReadinessEnum
from reminder_bot.persistence.inotifier import INotifier

# LINE requires retry keys to be UUIDs
_RETRY_KEY_NAMESPACE = uuid5(NAMESPACE_URL, "line-todo-reminder")


class LineNotifier(INotifier):
    _config: LineModel

    def __init__(self, config: LineModel):
        logger.info("Using LINE Messaging API at %s", config.endpoint)
        self._config = config

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the LINE Messaging API.

        This only check if the API is reachable and the access token is accepted.
        """
        client = await self._use_client()
        try:
            async with client.get(
                f"{self._config.endpoint}/v2/bot/info",
                headers=self._headers(),
            ) as res:
                assert res.status == HTTPStatus.OK, f"Status {res.status}"
            return ReadinessEnum.OK
        except AssertionError:
            logger.exception("Readiness test failed")
        except (ClientError, asyncio.TimeoutError):
            logger.exception("Unknown error while checking LINE readiness")
        return ReadinessEnum.FAIL

    async def push(
        self,
        content: str,
        owner_id: str,
        retry_key: str | None = None,
    ) -> bool:
        logger.info("Pushing message to %s", owner_id)
        logger.debug("Message content: %s", content)
        headers = self._headers()
        if retry_key:
            headers["X-Line-Retry-Key"] = str(uuid5(_RETRY_KEY_NAMESPACE, retry_key))
        success = await self._post(
            headers=headers,
            path="/v2/bot/message/push",
            payload={
                "messages": [{"text": content, "type": "text"}],
                "to": owner_id,
            },
        )
        if success:
            logger.debug("Message pushed to %s", owner_id)
        return success

    async def reply(
        self,
        content: str,
        reply_token: str,
    ) -> bool:
        return await self._post(
            headers=self._headers(),
            path="/v2/bot/message/reply",
            payload={
                "messages": [{"text": content, "type": "text"}],
                "replyToken": reply_token,
            },
        )

    def validate_signature(self, body: bytes, signature: str) -> bool:
        """
        Check the `X-Line-Signature` header of a webhook request.

        Signature is the base64 encoded HMAC-SHA256 of the raw body, keyed with the channel secret.

        See: https://developers.line.biz/en/docs/messaging-api/receiving-messages/#verify-signature
        """
        digest = HMAC(
            digestmod=sha256,
            key=self._config.channel_secret.get_secret_value().encode("utf-8"),
            msg=body,
        ).digest()
        return compare_digest(b64encode(digest).decode("utf-8"), signature or "")

    async def _post(
        self,
        headers: dict[str, str],
        path: str,
        payload: dict[str, Any],
    ) -> bool:
        client = await self._use_client()
        try:
            async with client.post(
                f"{self._config.endpoint}{path}",
                headers=headers,
                json=payload,
            ) as res:
                if res.status == HTTPStatus.OK:
                    return True
                # Same retry key was already accepted, the message is delivered
                if res.status == HTTPStatus.CONFLICT and "X-Line-Retry-Key" in headers:
                    logger.info("Message already accepted by LINE, skipping")
                    return True
                logger.warning(
                    "Failed LINE request %s, status %s, error %s",
                    path,
                    res.status,
                    await res.text(),
                )
        except (ClientError, asyncio.TimeoutError):
            logger.exception("Error requesting LINE %s", path)
        return False

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.access_token.get_secret_value()}",
        }

    async def _use_client(self) -> RetryClient:
        return await line_http()
