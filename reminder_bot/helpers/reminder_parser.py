import re
from datetime import UTC, datetime

from pytz import AmbiguousTimeError, NonExistentTimeError
from pytz.tzinfo import BaseTzInfo

from reminder_bot.helpers.errors import InvalidDateTimeError, ReminderValidationError
from reminder_bot.models.reminder import ParsedReminderModel

# "<month>/<day> <hour>:<minute> <body>", on a single line
# Ideographic space is accepted as a separator
_REMINDER_PATTERN = re.compile(
    r"(?P<month>[0-9]{1,2})/(?P<day>[0-9]{1,2})[ \t\u3000]+(?P<hour>[0-9]{1,2}):(?P<minute>[0-9]{1,2})[ \t\u3000]+(?P<body>[^\r\n]+)"
)
# Start of a reminder command, the rest of the text must then follow the grammar
_REMINDER_PREFIX = re.compile(
    r"[0-9]{1,2}/[0-9]{1,2}[ \t\u3000]+[0-9]{1,2}:[0-9]{1,2}[ \t\u3000]+\S"
)


def parse_reminder(
    text: str,
    now: datetime,
    tz: BaseTzInfo,
) -> ParsedReminderModel | None:
    """
    Parse a reminder command, like `3/20 9:00 A廠商開會`.

    Year is the current year in `tz`, wall-clock time is interpreted in `tz` too. Returns `None` if the text is not a reminder command, so the caller can try other commands.

    Raises `ReminderValidationError` if the text starts like a reminder but does not follow the grammar, like a body spanning several lines. Raises `InvalidDateTimeError` if the components do not resolve to an instant.
    """
    text = text.strip()
    match = _REMINDER_PATTERN.fullmatch(text)
    if not match:
        if _REMINDER_PREFIX.match(text):
            raise ReminderValidationError("Reminder command is malformed")
        return None

    body = match.group("body").strip()
    if not body:
        return None

    due_at = resolve_local_datetime(
        day=int(match.group("day")),
        hour=int(match.group("hour")),
        minute=int(match.group("minute")),
        month=int(match.group("month")),
        tz=tz,
        year=now.astimezone(tz).year,
    )
    return ParsedReminderModel(
        body=body,
        due_at=due_at,
    )


def resolve_local_datetime(
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    tz: BaseTzInfo,
) -> datetime:
    """
    Build an UTC instant from wall-clock components in `tz`.

    Construction is strict, out of range components are refused instead of wrapping to the next month or day. A wall time repeated by a DST change resolves to the standard time occurrence.
    """
    try:
        naive = datetime(year, month, day, hour, minute)
    except ValueError as e:
        raise InvalidDateTimeError(
            f"Invalid date {year}-{month}-{day} {hour}:{minute}: {e}"
        ) from e

    try:
        local = tz.localize(naive, is_dst=None)
    except NonExistentTimeError as e:
        raise InvalidDateTimeError(f"Time {naive} does not exist in {tz}") from e
    except AmbiguousTimeError:
        local = tz.localize(naive, is_dst=False)

    return local.astimezone(UTC)


def format_due_short(due_at: datetime, tz: BaseTzInfo) -> str:
    """
    Render a due time as `MM/DD HH:mm` in `tz`, used in lists.
    """
    return due_at.astimezone(tz).strftime("%m/%d %H:%M")


def format_due_long(due_at: datetime, tz: BaseTzInfo) -> str:
    """
    Render a due time as `YYYY/MM/DD HH:mm` in `tz`, used in confirmations.
    """
    return due_at.astimezone(tz).strftime("%Y/%m/%d %H:%M")
