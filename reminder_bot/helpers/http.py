from aiohttp import (
    AsyncResolver,
    ClientSession,
    ClientTimeout,
    DummyCookieJar,
    TCPConnector,
)
from aiohttp_retry import JitterRetry, RetryClient

from reminder_bot.helpers.cache import loop_cache


@loop_cache()
async def aiohttp_session() -> ClientSession:
    """
    Create the AIOHTTP session shared by all outbound calls.

    One session per event loop. Cookies are never stored, the APIs called are stateless.
    """
    return ClientSession(
        cookie_jar=DummyCookieJar(),
        trust_env=True,
        # Performance
        connector=TCPConnector(resolver=AsyncResolver()),
        # Reliability
        timeout=ClientTimeout(
            connect=5,
            total=30,
        ),
    )


@loop_cache()
async def line_http() -> RetryClient:
    """
    Create an HTTP client for the LINE Messaging API.

    Requests are retried with jitter on network errors and on 429 and 5xx statuses. Pushes carry a retry key, so a retried push is delivered once.
    """
    return RetryClient(
        client_session=await aiohttp_session(),
        raise_for_status=False,
        # Reliability
        retry_options=JitterRetry(
            attempts=3,
            max_timeout=4,
            start_timeout=0.5,
            statuses={429, 500, 502, 503, 504},
        ),
    )
