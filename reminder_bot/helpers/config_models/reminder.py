from datetime import timedelta

from pydantic import BaseModel, Field, model_validator

from reminder_bot.helpers.pydantic_types.timezones import TimeZone


class ReminderSettingsModel(BaseModel):
    candidate_timeout_sec: int = Field(default=10, ge=1, le=60)
    lookahead_min: int = Field(default=60, ge=1)
    scan_concurrency: int = Field(default=10, ge=1, le=100)
    scan_interval_sec: int = Field(default=0, ge=0)
    """Interval of the in-process scan loop. Zero disables it, scans are then triggered by the API."""
    timezone: TimeZone = TimeZone("Asia/Taipei")

    @model_validator(mode="after")
    def _validate_scan_interval(self) -> "ReminderSettingsModel":
        # A due time must not be able to fall between two scan windows
        if self.scan_interval_sec and self.scan_interval_sec >= self.lookahead_min * 60:
            raise ValueError("scan_interval_sec must be lower than lookahead_min")
        return self

    @property
    def lookahead(self) -> timedelta:
        return timedelta(minutes=self.lookahead_min)
