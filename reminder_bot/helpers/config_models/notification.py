from enum import Enum
from functools import cached_property

from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator

from reminder_bot.persistence.inotifier import INotifier


class ModeEnum(str, Enum):
    CONSOLE = "console"
    """Log notifications, nothing is sent."""
    LINE = "line"
    """Use LINE Messaging API."""


class ConsoleModel(BaseModel, frozen=True):
    """
    Represents the configuration for the console notifier.

    Model is purely empty to fit to the `INotifier` interface and the "mode" enum code organization.
    """

    @cached_property
    def instance(self) -> INotifier:
        from reminder_bot.persistence.console import (
            ConsoleNotifier,
        )

        return ConsoleNotifier()


class LineModel(BaseModel, frozen=True):
    access_token: SecretStr
    channel_secret: SecretStr
    endpoint: str = "https://api.line.me"

    @cached_property
    def instance(self) -> INotifier:
        from reminder_bot.persistence.line import (
            LineNotifier,
        )

        return LineNotifier(self)


class NotificationModel(BaseModel):
    mode: ModeEnum = ModeEnum.CONSOLE
    # Validators below read the mode, it must be declared first
    console: ConsoleModel | None = Field(
        default=ConsoleModel(),  # Object is fully defined by default
        validate_default=True,
    )
    line: LineModel | None = Field(
        default=None,
        validate_default=True,
    )

    @field_validator("console")
    @classmethod
    def _validate_console(
        cls,
        console: ConsoleModel | None,
        info: ValidationInfo,
    ) -> ConsoleModel | None:
        if not console and info.data.get("mode", None) == ModeEnum.CONSOLE:
            raise ValueError("Console config required")
        return console

    @field_validator("line")
    @classmethod
    def _validate_line(
        cls,
        line: LineModel | None,
        info: ValidationInfo,
    ) -> LineModel | None:
        if not line and info.data.get("mode", None) == ModeEnum.LINE:
            raise ValueError("LINE config required")
        return line

    @cached_property
    def instance(self) -> INotifier:
        if self.mode == ModeEnum.CONSOLE:
            assert self.console
            return self.console.instance

        assert self.line
        return self.line.instance
