import asyncio
import math
import time
from datetime import UTC, datetime, timedelta
from enum import Enum
from hmac import compare_digest

from pydantic import SecretStr

from reminder_bot.helpers.cache import get_scheduler
from reminder_bot.helpers.errors import BackendUnavailableError, UnauthorizedError
from reminder_bot.helpers.logging import logger
from reminder_bot.helpers.monitoring import (
    SpanAttributeEnum,
    counter_add,
    gauge_set,
    reminder_notified,
    reminder_notify_failed,
    scan_latency,
    start_as_current_span,
)
from reminder_bot.helpers.reminder_lifecycle import mark_notified
from reminder_bot.models.reminder import ReminderModel, ScanSummaryModel
from reminder_bot.persistence.inotifier import INotifier
from reminder_bot.persistence.istore import IStore

DEFAULT_LOOKAHEAD = timedelta(hours=1)


class NotifyOutcomeEnum(str, Enum):
    FAILED = "failed"
    """Push failed or timed out, reminder is left untouched for the next scan."""
    NOTIFIED = "notified"
    """Push accepted and reminder flagged as notified."""
    SKIPPED = "skipped"
    """Push accepted but another writer flagged, completed or deleted the reminder first."""


def check_scan_secret(
    expected: SecretStr,
    provided: str | None,
) -> None:
    """
    Validate the secret presented by a scan trigger.

    Raises `UnauthorizedError` if missing or different, comparison is constant-time.
    """
    if not provided or not compare_digest(
        expected.get_secret_value().encode("utf-8"),
        provided.encode("utf-8"),
    ):
        raise UnauthorizedError("Scan secret does not match")


def minutes_until(due_at: datetime, now: datetime) -> int:
    """
    Minutes left before the due time, rounded half up.
    """
    return math.floor((due_at - now) / timedelta(minutes=1) + 0.5)


def notification_text(reminder: ReminderModel, minutes_left: int) -> str:
    return f"⏰ 提醒：{reminder.body}\n距離開始還有約 {minutes_left} 分鐘"


@start_as_current_span("reminder_scan")
async def run_notification_scan(
    store: IStore,
    notifier: INotifier,
    now: datetime,
    lookahead: timedelta = DEFAULT_LOOKAHEAD,
    candidate_timeout: float = 10,
    concurrency: int = 10,
) -> ScanSummaryModel:
    """
    Notify the reminders entering their notification window.

    Reminders due in `(now, now + lookahead]`, neither notified nor completed, are pushed to their owner and flagged as notified. Each candidate is processed independently, at most `concurrency` at a time and each push bounded by `candidate_timeout` secs. A failed push leaves the reminder untouched, it is retried by the next scan while still in the window.

    Overlapping scans are not excluded, the notified flag is written with a compare-and-set so a reminder is counted once.

    Raises `BackendUnavailableError` if candidates cannot be listed.
    """
    start = time.monotonic()
    if now.tzinfo is None:
        raise ValueError("Scan time must be timezone-aware")
    now = now.astimezone(UTC)
    window_end = now + lookahead

    try:
        candidates = await store.reminder_search_due(
            window_end=window_end,
            window_start=now,
        )
    except BackendUnavailableError:
        logger.exception("Store unavailable, cannot list due reminders")
        raise
    except Exception as e:
        logger.exception("Unexpected store error while listing due reminders")
        raise BackendUnavailableError("Cannot list due reminders") from e

    SpanAttributeEnum.SCAN_CANDIDATES.attribute(len(candidates))
    logger.info(
        "Found %s reminders due until %s to notify",
        len(candidates),
        window_end.isoformat(),
    )

    outcomes: list[NotifyOutcomeEnum] = []
    if candidates:
        async with get_scheduler(
            close_timeout=candidate_timeout,
            limit=concurrency,
        ) as scheduler:
            jobs = [
                await scheduler.spawn(
                    _notify_candidate(
                        notifier=notifier,
                        now=now,
                        reminder=reminder,
                        store=store,
                        timeout=candidate_timeout,
                    )
                )
                for reminder in candidates
            ]
            outcomes = await asyncio.gather(*(job.wait() for job in jobs))

    summary = ScanSummaryModel(
        candidate_count=len(candidates),
        failed_count=outcomes.count(NotifyOutcomeEnum.FAILED),
        notified_count=outcomes.count(NotifyOutcomeEnum.NOTIFIED),
    )
    gauge_set(scan_latency, time.monotonic() - start)
    logger.info(
        "Processed %s reminders, sent %s notifications, %s failed",
        summary.candidate_count,
        summary.notified_count,
        summary.failed_count,
    )
    return summary


async def _notify_candidate(
    store: IStore,
    notifier: INotifier,
    reminder: ReminderModel,
    now: datetime,
    timeout: float,
) -> NotifyOutcomeEnum:
    """
    Push one reminder, then flag it as notified.

    Never raises, failures are logged and reported as an outcome.
    """
    # Enrich span
    SpanAttributeEnum.REMINDER_ID.attribute(reminder.reminder_id)
    SpanAttributeEnum.OWNER_ID.attribute(reminder.owner_id)

    minutes_left = minutes_until(reminder.due_at, now)

    # First, send
    try:
        sent = await asyncio.wait_for(
            notifier.push(
                content=notification_text(reminder, minutes_left),
                owner_id=reminder.owner_id,
                retry_key=reminder.reminder_id,
            ),
            timeout=timeout,
        )
    except TimeoutError:
        logger.warning("Notification timed out after %s secs", timeout)
        sent = False
    except Exception:
        logger.exception("Error sending notification")
        sent = False
    if not sent:
        counter_add(reminder_notify_failed, 1)
        return NotifyOutcomeEnum.FAILED

    # Then, flag
    try:
        marked = await mark_notified(
            reminder=reminder,
            store=store,
        )
    except BackendUnavailableError:
        # Push is delivered but not recorded, the next scan pushes again with the same retry key
        logger.error("Notification sent but not recorded")
        counter_add(reminder_notify_failed, 1)
        return NotifyOutcomeEnum.FAILED
    if not marked:
        logger.warning("Reminder flagged, completed or deleted concurrently, not counted")
        return NotifyOutcomeEnum.SKIPPED

    counter_add(reminder_notified, 1)
    logger.info("Notification sent, %s minutes left", minutes_left)
    return NotifyOutcomeEnum.NOTIFIED


async def scan_forever(
    store: IStore,
    notifier: INotifier,
    interval_sec: float,
    lookahead: timedelta = DEFAULT_LOOKAHEAD,
    candidate_timeout: float = 10,
    concurrency: int = 10,
) -> None:
    """
    Run a scan every `interval_sec` secs, until cancelled.

    Scans run one after the other, a scan never overlaps the previous one. A failed scan is logged and the loop continues.
    """
    logger.info("In-process scan is set to run every %s secs", interval_sec)
    try:
        while True:
            try:
                await run_notification_scan(
                    candidate_timeout=candidate_timeout,
                    concurrency=concurrency,
                    lookahead=lookahead,
                    notifier=notifier,
                    now=datetime.now(UTC),
                    store=store,
                )
            except BackendUnavailableError:
                logger.warning("Scan failed, retrying in %s secs", interval_sec)
            except Exception:
                logger.exception(
                    "Unexpected error during scan, retrying in %s secs", interval_sec
                )
            await asyncio.sleep(interval_sec)
    except asyncio.CancelledError:
        logger.debug("In-process scan task cancelled")
