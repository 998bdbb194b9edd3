import asyncio
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime
from http import HTTPStatus
from json import JSONDecodeError
from typing import Annotated

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from reminder_bot.helpers.commands import handle_command
from reminder_bot.helpers.config import CONFIG
from reminder_bot.helpers.errors import (
    BackendUnavailableError,
    ReminderError,
    ReminderNotFoundError,
    ReminderParseError,
    ReminderValidationError,
    UnauthorizedError,
)
from reminder_bot.helpers.http import aiohttp_session
from reminder_bot.helpers.logging import logger
from reminder_bot.helpers.monitoring import (
    SpanAttributeEnum,
    start_as_current_span,
)
from reminder_bot.helpers.reminder_lifecycle import (
    complete_reminder,
    create_reminder_from_text,
    delete_reminder,
    list_reminders,
)
from reminder_bot.helpers.reminder_scanner import (
    check_scan_secret,
    run_notification_scan,
    scan_forever,
)
from reminder_bot.models.api import (
    ReminderCreateModel,
    ReminderOwnerModel,
    ScanRequestModel,
)
from reminder_bot.models.error import ErrorInnerModel, ErrorModel
from reminder_bot.models.line import LineEventModel, LineWebhookModel
from reminder_bot.models.readiness import (
    ReadinessEnum,
    ReadinessModel,
)
from reminder_bot.models.reminder import (
    ReminderBodyModel,
    ReminderCreatedModel,
    ReminderListItemModel,
    ScanSummaryModel,
)
from reminder_bot.persistence.line import LineNotifier

# First log
logger.info(
    "line-todo-reminder v%s",
    CONFIG.version,
)

# Persistences
_db = CONFIG.database.instance
_notifier = CONFIG.notification.instance

# Wall-clock times of the users
_tz = CONFIG.reminder.timezone.tz()
logger.info("Using time zone %s", CONFIG.reminder.timezone)

# Error types to HTTP statuses, details are never forwarded
_ERRORS: dict[type[ReminderError], tuple[HTTPStatus, str, str]] = {
    BackendUnavailableError: (
        HTTPStatus.SERVICE_UNAVAILABLE,
        "backend_unavailable",
        "Service temporarily unavailable, try again later",
    ),
    ReminderNotFoundError: (
        HTTPStatus.NOT_FOUND,
        "not_found",
        "Reminder not found",
    ),
    ReminderParseError: (
        HTTPStatus.BAD_REQUEST,
        "parse_error",
        "Expected format is '<month>/<day> <hour>:<minute> <text>', like '3/20 9:00 Meeting'",
    ),
    ReminderValidationError: (
        HTTPStatus.BAD_REQUEST,
        "validation_error",
        "Reminder text is empty or its date cannot be resolved",
    ),
    UnauthorizedError: (
        HTTPStatus.UNAUTHORIZED,
        "unauthorized",
        "Unauthorized",
    ),
}


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    scan_task = None

    try:
        if CONFIG.reminder.scan_interval_sec:
            scan_task = asyncio.create_task(
                scan_forever(
                    candidate_timeout=CONFIG.reminder.candidate_timeout_sec,
                    concurrency=CONFIG.reminder.scan_concurrency,
                    interval_sec=CONFIG.reminder.scan_interval_sec,
                    lookahead=CONFIG.reminder.lookahead,
                    notifier=_notifier,
                    store=_db,
                ),
                name="scan_forever",
            )
        yield

    # Cancel tasks
    finally:
        if scan_task:
            scan_task.cancel()
            with suppress(asyncio.CancelledError):
                await scan_task

    # Close HTTP session
    await (await aiohttp_session()).close()


# FastAPI
api = FastAPI(
    description="Register reminders from a LINE chat, and get a push notification one hour before.",
    lifespan=lifespan,
    title="line-todo-reminder",
    version=CONFIG.version,
)


@api.exception_handler(ReminderError)
async def reminder_error_handler(
    request: Request,  # noqa: ARG001
    exc: ReminderError,
) -> JSONResponse:
    status, code, message = next(
        (value for error, value in _ERRORS.items() if isinstance(exc, error)),
        (
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "internal_error",
            "Internal server error",
        ),
    )
    logger.debug("Request failed with %s: %s", code, exc)
    return JSONResponse(
        content=ErrorModel(
            error=ErrorInnerModel(
                code=code,
                message=message,
            )
        ).model_dump(mode="json"),
        status_code=status,
    )


@api.get("/health/liveness")
@start_as_current_span("health_liveness_get")
async def health_liveness_get() -> None:
    """
    Check if the service is running.

    No parameters are expected.

    Returns a 200 OK if the service is technically running.
    """
    return


@api.get(
    "/health/readiness",
    status_code=HTTPStatus.OK,
)
@start_as_current_span("health_readiness_get")
async def health_readiness_get() -> JSONResponse:
    """
    Check if the service is ready to serve requests.

    No parameters are expected. Services tested are: store, notifier.

    Returns a 200 OK if the service is ready to serve requests. If the service is not ready, it should return a 503 Service Unavailable.
    """
    # Check all components in parallel
    (
        store_check,
        notifier_check,
    ) = await asyncio.gather(
        _db.readiness(),
        _notifier.readiness(),
    )
    readiness = ReadinessModel.from_checks(
        {
            "notifier": notifier_check,
            "startup": ReadinessEnum.OK,
            "store": store_check,
        }
    )
    return JSONResponse(
        content=readiness.model_dump(mode="json"),
        status_code=(
            HTTPStatus.OK
            if readiness.status == ReadinessEnum.OK
            else HTTPStatus.SERVICE_UNAVAILABLE
        ),
    )


@api.post(
    "/reminders",
    status_code=HTTPStatus.CREATED,
)
@start_as_current_span("reminder_post")
async def reminder_post(body: ReminderCreateModel) -> ReminderCreatedModel:
    """
    REST API to create a reminder from a command text.

    Required body parameters is a JSON object `ReminderCreateModel`.

    Returns the created reminder `ReminderCreatedModel`, in JSON format. Returns a 400 Bad Request if the text is not a reminder command or its date is invalid.
    """
    return await create_reminder_from_text(
        now=datetime.now(UTC),
        owner_id=body.owner_id,
        raw_text=body.text,
        store=_db,
        tz=_tz,
    )


@api.get("/reminders")
@start_as_current_span("reminder_list_get")
async def reminder_list_get(owner_id: str) -> list[ReminderListItemModel]:
    """
    REST API to list the pending reminders of an owner.

    Parameters:
    - owner_id: Owner of the reminders

    Returns a list of `ReminderListItemModel`, ordered by due time, in JSON format.
    """
    return await list_reminders(
        owner_id=owner_id,
        store=_db,
        tz=_tz,
    )


@api.post("/reminders/{reminder_id}/complete")
@start_as_current_span("reminder_complete_post")
async def reminder_complete_post(
    reminder_id: str,
    body: ReminderOwnerModel,
) -> ReminderBodyModel:
    """
    REST API to mark a reminder as completed.

    Required body parameters is a JSON object `ReminderOwnerModel`.

    Returns the reminder text `ReminderBodyModel`. Returns a 404 Not Found if the reminder does not exist, is already completed, or is owned by someone else.
    """
    reminder = await complete_reminder(
        owner_id=body.owner_id,
        reminder_id=reminder_id,
        store=_db,
    )
    return ReminderBodyModel(body=reminder.body)


@api.delete("/reminders/{reminder_id}")
@start_as_current_span("reminder_id_delete")
async def reminder_id_delete(
    reminder_id: str,
    owner_id: str,
) -> ReminderBodyModel:
    """
    REST API to delete a reminder.

    Parameters:
    - owner_id: Owner of the reminder

    Returns the reminder text `ReminderBodyModel`. Returns a 404 Not Found if the reminder does not exist or is owned by someone else.
    """
    reminder = await delete_reminder(
        owner_id=owner_id,
        reminder_id=reminder_id,
        store=_db,
    )
    return ReminderBodyModel(body=reminder.body)


@api.post("/reminders/scan")
@api.post("/api/check-reminders")  # Path used by existing time-based triggers
@start_as_current_span("reminder_scan_post")
async def reminder_scan_post(
    request: Request,
    x_api_key: Annotated[str | None, Header()] = None,
) -> ScanSummaryModel:
    """
    Notify the reminders due within the lookahead window.

    The caller must present the shared secret, in the `X-API-Key` header or the `apiKey` JSON body field. Meant to be called every minute by an external scheduler.

    Returns the scan summary `ScanSummaryModel`. Returns a 401 Unauthorized, without scanning, if the secret does not match.
    """
    api_key = x_api_key
    if not api_key:
        try:
            payload = await request.json()
            api_key = ScanRequestModel.model_validate(payload).api_key
        except (JSONDecodeError, UnicodeDecodeError, ValidationError):
            api_key = None
    check_scan_secret(
        expected=CONFIG.api.secret_key,
        provided=api_key,
    )

    return await run_notification_scan(
        candidate_timeout=CONFIG.reminder.candidate_timeout_sec,
        concurrency=CONFIG.reminder.scan_concurrency,
        lookahead=CONFIG.reminder.lookahead,
        notifier=_notifier,
        now=datetime.now(UTC),
        store=_db,
    )


@api.post("/webhook")
@start_as_current_span("line_webhook_post")
async def line_webhook_post(
    request: Request,
    x_line_signature: Annotated[str | None, Header()] = None,
) -> dict:
    """
    Handle LINE webhook events.

    Request signature is validated with the channel secret. Text messages are answered with the reply API, other events are ignored.

    Returns an empty JSON object, LINE only expects a 200 OK.
    """
    raw_body = await request.body()

    # Validate signature
    if isinstance(_notifier, LineNotifier):
        if not _notifier.validate_signature(raw_body, x_line_signature or ""):
            raise HTTPException(
                detail="Signature does not match",
                status_code=HTTPStatus.UNAUTHORIZED,
            )
    else:
        logger.debug("Notifier is not LINE, signature is not validated")

    try:
        webhook = LineWebhookModel.model_validate_json(raw_body)
    except ValidationError as e:
        raise HTTPException(
            detail="Invalid webhook payload",
            status_code=HTTPStatus.BAD_REQUEST,
        ) from e

    await asyncio.gather(*(_line_event(event) for event in webhook.events))
    return {}


async def _line_event(event: LineEventModel) -> None:
    """
    Answer a single text message event.
    """
    if (
        event.type != "message"
        or not event.message
        or event.message.type != "text"
        or not event.message.text
    ):
        logger.debug("Event %s not supported", event.type)
        return
    if not event.source or not event.source.user_id or not event.reply_token:
        logger.warning("Message event without user or reply token, skipping")
        return

    # Enrich span
    SpanAttributeEnum.OWNER_ID.attribute(event.source.user_id)

    reply = await handle_command(
        now=datetime.now(UTC),
        owner_id=event.source.user_id,
        store=_db,
        text=event.message.text,
        tz=_tz,
    )
    if not await _notifier.reply(
        content=reply,
        reply_token=event.reply_token,
    ):
        logger.warning("Reply to user failed")
