from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


class ReminderModel(BaseModel):
    # Immutable fields
    body: str = Field(frozen=True, min_length=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), frozen=True)
    due_at: datetime = Field(frozen=True)
    owner_id: str = Field(frozen=True, min_length=1)
    reminder_id: str = Field(default_factory=lambda: str(uuid4()), frozen=True)
    # Editable fields
    is_completed: bool = False
    is_notified: bool = False

    @field_validator("due_at", "created_at")
    @classmethod
    def _validate_utc(cls, value: datetime) -> datetime:
        """
        Normalize timestamps to UTC.

        Naive timestamps are refused, they cannot be resolved to an instant.
        """
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("Timestamp must be timezone-aware")
        return value.astimezone(UTC)


class ReminderPatchModel(BaseModel):
    """
    Flags to set on a reminder, or to expect before a conditional update.

    Unset flags are left untouched, respectively not checked.
    """

    is_completed: bool | None = None
    is_notified: bool | None = None

    def as_flags(self) -> dict[str, bool]:
        return self.model_dump(exclude_none=True)


class ParsedReminderModel(BaseModel, frozen=True):
    body: str
    due_at: datetime


class ReminderCreatedModel(BaseModel):
    body: str
    due_at: datetime
    due_at_local: str
    """Due time in the configured zone, as `YYYY/MM/DD HH:mm`."""
    reminder_id: str


class ReminderListItemModel(BaseModel):
    body: str
    due_at_local: str
    """Due time in the configured zone, as `MM/DD HH:mm`."""
    index: int
    """Position in the list, starting at 1."""
    reminder_id: str


class ReminderBodyModel(BaseModel):
    body: str


class ScanSummaryModel(BaseModel):
    candidate_count: int = 0
    failed_count: int = 0
    notified_count: int = 0
