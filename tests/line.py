import json
from base64 import b64encode
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from hashlib import sha256
from hmac import HMAC
from http import HTTPStatus
from typing import Any
from uuid import UUID

import pytest
from aiohttp import test_utils, web
from httpx import ASGITransport, AsyncClient
from pytest_assume.plugin import assume

from reminder_bot.helpers.config_models.notification import LineModel
from reminder_bot.main import _db, api
from reminder_bot.models.readiness import ReadinessEnum
from reminder_bot.persistence.line import LineNotifier

_CHANNEL_SECRET = "channel-secret"


class LineApiMock:
    """
    LINE Messaging API answering every request with the same status, recording them.
    """

    requests: list[tuple[str, Mapping[str, str], Any]]
    status: HTTPStatus

    def __init__(self, status: HTTPStatus = HTTPStatus.OK) -> None:
        self.requests = []
        self.status = status

    async def handle(self, request: web.Request) -> web.Response:
        payload = await request.json() if request.body_exists else None
        self.requests.append((request.path, request.headers.copy(), payload))
        return web.json_response({}, status=self.status)


@asynccontextmanager
async def _line_api(
    status: HTTPStatus = HTTPStatus.OK,
) -> AsyncGenerator[tuple[LineApiMock, LineNotifier]]:
    mock = LineApiMock(status)
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", mock.handle)
    async with test_utils.TestServer(app) as server:
        notifier = LineNotifier(
            LineModel(
                access_token="token",
                channel_secret=_CHANNEL_SECRET,
                endpoint=f"http://{server.host}:{server.port}",
            )
        )
        yield mock, notifier


def _sign(body: bytes) -> str:
    return b64encode(
        HMAC(
            digestmod=sha256,
            key=_CHANNEL_SECRET.encode("utf-8"),
            msg=body,
        ).digest()
    ).decode("utf-8")


@pytest.mark.asyncio(loop_scope="session")
async def test_push(owner_id: str) -> None:
    async with _line_api() as (mock, notifier):
        assert await notifier.push(
            content="⏰ 提醒：A廠商開會",
            owner_id=owner_id,
        )

    path, headers, payload = mock.requests[0]
    assume(path == "/v2/bot/message/push")
    assume(headers["Authorization"] == "Bearer token")
    assume("X-Line-Retry-Key" not in headers)
    assume(
        payload
        == {
            "messages": [{"text": "⏰ 提醒：A廠商開會", "type": "text"}],
            "to": owner_id,
        }
    )


@pytest.mark.asyncio(loop_scope="session")
async def test_push_retry_key(owner_id: str) -> None:
    """
    Retry key is a UUID derived from the reminder, the same for every attempt.
    """
    async with _line_api() as (mock, notifier):
        for retry_key in ("reminder-1", "reminder-1", "reminder-2"):
            assert await notifier.push(
                content="retry",
                owner_id=owner_id,
                retry_key=retry_key,
            )

    keys = [headers["X-Line-Retry-Key"] for _, headers, _ in mock.requests]
    assume(len(keys) == 3)
    assume(all(UUID(key) for key in keys))
    assume(keys[0] == keys[1])
    assume(keys[0] != keys[2])


@pytest.mark.asyncio(loop_scope="session")
async def test_push_already_accepted(owner_id: str) -> None:
    """
    A conflict on a push with a retry key means the message was already delivered.
    """
    async with _line_api(HTTPStatus.CONFLICT) as (_, notifier):
        with_key = await notifier.push(
            content="twice",
            owner_id=owner_id,
            retry_key="reminder-1",
        )
        without_key = await notifier.push(
            content="twice",
            owner_id=owner_id,
        )
        reply = await notifier.reply(
            content="twice",
            reply_token="reply-token",
        )
    assume(with_key)
    assume(not without_key)
    assume(not reply)


@pytest.mark.parametrize(
    "status",
    [
        pytest.param(HTTPStatus.BAD_REQUEST, id="bad_request"),
        pytest.param(HTTPStatus.UNAUTHORIZED, id="unauthorized"),
        pytest.param(HTTPStatus.FORBIDDEN, id="forbidden"),
    ],
)
@pytest.mark.asyncio(loop_scope="session")
async def test_push_refused(owner_id: str, status: HTTPStatus) -> None:
    async with _line_api(status) as (mock, notifier):
        pushed = await notifier.push(
            content="refused",
            owner_id=owner_id,
            retry_key="reminder-1",
        )
        replied = await notifier.reply(
            content="refused",
            reply_token="reply-token",
        )
    assume(not pushed)
    assume(not replied)
    # Client errors are not retried
    assume(len(mock.requests) == 2)


@pytest.mark.asyncio(loop_scope="session")
async def test_reply() -> None:
    async with _line_api() as (mock, notifier):
        assert await notifier.reply(
            content="已新增提醒",
            reply_token="reply-token",
        )

    path, _, payload = mock.requests[0]
    assume(path == "/v2/bot/message/reply")
    assume(
        payload
        == {
            "messages": [{"text": "已新增提醒", "type": "text"}],
            "replyToken": "reply-token",
        }
    )


@pytest.mark.parametrize(
    "status, expected",
    [
        pytest.param(HTTPStatus.OK, ReadinessEnum.OK, id="ok"),
        pytest.param(HTTPStatus.UNAUTHORIZED, ReadinessEnum.FAIL, id="bad_token"),
    ],
)
@pytest.mark.asyncio(loop_scope="session")
async def test_readiness(status: HTTPStatus, expected: ReadinessEnum) -> None:
    async with _line_api(status) as (mock, notifier):
        readiness = await notifier.readiness()
    assume(readiness == expected)
    assume(mock.requests[0][0] == "/v2/bot/info")


@pytest.mark.asyncio(loop_scope="session")
async def test_webhook_signature(
    monkeypatch: pytest.MonkeyPatch,
    owner_id: str,
) -> None:
    """
    With LINE configured, unsigned webhooks are refused and signed ones are answered.
    """
    body = json.dumps(
        {
            "destination": "Uxxxxxxxx",
            "events": [
                {
                    "message": {"id": "1", "text": "3/20 9:00 signed", "type": "text"},
                    "replyToken": "reply-token",
                    "source": {"type": "user", "userId": owner_id},
                    "type": "message",
                },
            ],
        }
    ).encode("utf-8")

    async with _line_api() as (mock, notifier):
        monkeypatch.setattr("reminder_bot.main._notifier", notifier)
        async with AsyncClient(
            base_url="http://test",
            transport=ASGITransport(app=api),
        ) as client:
            missing = await client.post("/webhook", content=body)
            wrong = await client.post(
                "/webhook",
                content=body,
                headers={"X-Line-Signature": _sign(body + b" ")},
            )
            pending_refused = await _db.reminder_search_pending(owner_id)
            signed = await client.post(
                "/webhook",
                content=body,
                headers={"X-Line-Signature": _sign(body)},
            )

    assume(missing.status_code == HTTPStatus.UNAUTHORIZED)
    assume(wrong.status_code == HTTPStatus.UNAUTHORIZED)
    assume(pending_refused == [])
    assume(signed.status_code == HTTPStatus.OK)

    pending = await _db.reminder_search_pending(owner_id)
    assume([reminder.body for reminder in pending] == ["signed"])
    assume([path for path, _, _ in mock.requests] == ["/v2/bot/message/reply"])
    assume(mock.requests[0][2]["replyToken"] == "reply-token")
