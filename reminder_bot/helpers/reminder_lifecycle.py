from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from pytz.tzinfo import BaseTzInfo

from reminder_bot.helpers.errors import (
    BackendUnavailableError,
    ReminderNotFoundError,
    ReminderParseError,
    ReminderValidationError,
)
from reminder_bot.helpers.logging import logger
from reminder_bot.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from reminder_bot.helpers.reminder_parser import (
    format_due_long,
    format_due_short,
    parse_reminder,
)
from reminder_bot.models.reminder import (
    ReminderCreatedModel,
    ReminderListItemModel,
    ReminderModel,
    ReminderPatchModel,
)
from reminder_bot.persistence.istore import IStore


@start_as_current_span("reminder_create")
async def create_reminder(
    store: IStore,
    owner_id: str,
    due_at: datetime,
    body: str,
) -> ReminderModel:
    """
    Create a pending reminder, neither notified nor completed.

    Raises `ReminderValidationError` if the body is empty or the due time is not an instant (naive datetime).
    """
    body = body.strip()
    if not body:
        raise ReminderValidationError("Reminder body is empty")
    if not owner_id:
        raise ReminderValidationError("Reminder owner is empty")
    if due_at.tzinfo is None or due_at.utcoffset() is None:
        raise ReminderValidationError(f"Due time {due_at} has no time zone")

    SpanAttributeEnum.OWNER_ID.attribute(owner_id)
    reminder = ReminderModel(
        body=body,
        due_at=due_at,
        owner_id=owner_id,
    )
    with _store_errors("create"):
        reminder = await store.reminder_create(reminder)

    SpanAttributeEnum.REMINDER_ID.attribute(reminder.reminder_id)
    logger.info("Reminder created, due at %s", reminder.due_at.isoformat())
    return reminder


@start_as_current_span("reminder_create_from_text")
async def create_reminder_from_text(
    store: IStore,
    owner_id: str,
    raw_text: str,
    now: datetime,
    tz: BaseTzInfo,
) -> ReminderCreatedModel:
    """
    Parse a `<month>/<day> <hour>:<minute> <body>` command and create the reminder.

    Raises `ReminderParseError` if the text does not follow the grammar, `ReminderValidationError` if it starts like a command but is malformed, like a multi-line body, `InvalidDateTimeError` if the date cannot be resolved. Nothing is persisted in both cases.
    """
    parsed = parse_reminder(
        now=now,
        text=raw_text,
        tz=tz,
    )
    if not parsed:
        raise ReminderParseError("Text is not a reminder command")

    reminder = await create_reminder(
        body=parsed.body,
        due_at=parsed.due_at,
        owner_id=owner_id,
        store=store,
    )
    return ReminderCreatedModel(
        body=reminder.body,
        due_at=reminder.due_at,
        due_at_local=format_due_long(reminder.due_at, tz),
        reminder_id=reminder.reminder_id,
    )


@start_as_current_span("reminder_complete")
async def complete_reminder(
    store: IStore,
    owner_id: str,
    reminder_id: str,
) -> ReminderModel:
    """
    Mark a reminder as completed.

    Completing twice is refused like a missing reminder. Raises `ReminderNotFoundError` if no pending reminder with this id is owned by `owner_id`.
    """
    SpanAttributeEnum.OWNER_ID.attribute(owner_id)
    SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)

    with _store_errors("complete"):
        reminder = await store.reminder_update(
            expected=ReminderPatchModel(is_completed=False),
            owner_id=owner_id,
            patch=ReminderPatchModel(is_completed=True),
            reminder_id=reminder_id,
        )
    if not reminder:
        raise ReminderNotFoundError(f"Reminder {reminder_id} not found")

    logger.info("Reminder completed")
    return reminder


@start_as_current_span("reminder_delete")
async def delete_reminder(
    store: IStore,
    owner_id: str,
    reminder_id: str,
) -> ReminderModel:
    """
    Delete a reminder, whatever its flags.

    Raises `ReminderNotFoundError` if no reminder with this id is owned by `owner_id`.
    """
    SpanAttributeEnum.OWNER_ID.attribute(owner_id)
    SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)

    with _store_errors("delete"):
        reminder = await store.reminder_delete(
            owner_id=owner_id,
            reminder_id=reminder_id,
        )
    if not reminder:
        raise ReminderNotFoundError(f"Reminder {reminder_id} not found")

    logger.info("Reminder deleted")
    return reminder


@start_as_current_span("reminder_list_pending")
async def list_pending(
    store: IStore,
    owner_id: str,
) -> list[ReminderModel]:
    """
    List the reminders of an owner which are not completed, by due time ascending.

    Notified reminders are included until completed or deleted.
    """
    SpanAttributeEnum.OWNER_ID.attribute(owner_id)

    with _store_errors("list"):
        return await store.reminder_search_pending(owner_id)


async def list_reminders(
    store: IStore,
    owner_id: str,
    tz: BaseTzInfo,
) -> list[ReminderListItemModel]:
    """
    List the pending reminders of an owner, numbered from 1, with local `MM/DD HH:mm` due times.
    """
    reminders = await list_pending(
        owner_id=owner_id,
        store=store,
    )
    return [
        ReminderListItemModel(
            body=reminder.body,
            due_at_local=format_due_short(reminder.due_at, tz),
            index=index,
            reminder_id=reminder.reminder_id,
        )
        for index, reminder in enumerate(reminders, start=1)
    ]


@start_as_current_span("reminder_mark_notified")
async def mark_notified(
    store: IStore,
    reminder: ReminderModel,
) -> bool:
    """
    Flag a reminder as notified, once.

    Compare-and-set: the write only applies if the reminder is still neither notified nor completed. Returns `False` if another writer came first, or if the reminder was deleted meanwhile.
    """
    with _store_errors("mark notified"):
        updated = await store.reminder_update(
            expected=ReminderPatchModel(
                is_completed=False,
                is_notified=False,
            ),
            owner_id=reminder.owner_id,
            patch=ReminderPatchModel(is_notified=True),
            reminder_id=reminder.reminder_id,
        )
    return updated is not None


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """
    Translate any store failure to `BackendUnavailableError`.

    Details are logged here, they are never forwarded to the end user.
    """
    try:
        yield
    except BackendUnavailableError:
        logger.exception("Store unavailable during %s", operation)
        raise
    except Exception as e:
        logger.exception("Unexpected store error during %s", operation)
        raise BackendUnavailableError(f"Store failed during {operation}") from e
