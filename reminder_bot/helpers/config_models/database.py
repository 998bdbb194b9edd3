from enum import Enum
from functools import cached_property

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from reminder_bot.persistence.istore import IStore


class ModeEnum(str, Enum):
    MEMORY = "memory"
    """Use process memory, data is lost on restart."""
    SQLITE = "sqlite"
    """Use a local SQLite file."""


class MemoryModel(BaseModel, frozen=True):
    """
    Represents the configuration for the in-memory store.

    Model is purely empty to fit to the `IStore` interface and the "mode" enum code organization.
    """

    @cached_property
    def instance(self) -> IStore:
        from reminder_bot.persistence.memory import (
            MemoryStore,
        )

        return MemoryStore(self)


class SqliteModel(BaseModel, frozen=True):
    path: str = ".local/reminders"
    schema_version: int = 1
    table: str = "reminders"

    def full_path(self) -> str:
        """
        Returns the full path to the sqlite database file.

        Formatted as: `{path}-v{schema_version}.sqlite`.
        """
        return f"{self.path}-v{self.schema_version}.sqlite"

    @cached_property
    def instance(self) -> IStore:
        from reminder_bot.persistence.sqlite import (
            SqliteStore,
        )

        return SqliteStore(self)


class DatabaseModel(BaseModel):
    mode: ModeEnum = ModeEnum.SQLITE
    # Validators below read the mode, it must be declared first
    memory: MemoryModel | None = Field(
        default=MemoryModel(),  # Object is fully defined by default
        validate_default=True,
    )
    sqlite: SqliteModel | None = Field(
        default=SqliteModel(),  # Object is fully defined by default
        validate_default=True,
    )

    @field_validator("memory")
    @classmethod
    def _validate_memory(
        cls,
        memory: MemoryModel | None,
        info: ValidationInfo,
    ) -> MemoryModel | None:
        if not memory and info.data.get("mode", None) == ModeEnum.MEMORY:
            raise ValueError("Memory config required")
        return memory

    @field_validator("sqlite")
    @classmethod
    def _validate_sqlite(
        cls,
        sqlite: SqliteModel | None,
        info: ValidationInfo,
    ) -> SqliteModel | None:
        if not sqlite and info.data.get("mode", None) == ModeEnum.SQLITE:
            raise ValueError("SQLite config required")
        return sqlite

    @cached_property
    def instance(self) -> IStore:
        if self.mode == ModeEnum.MEMORY:
            assert self.memory
            return self.memory.instance

        assert self.sqlite
        return self.sqlite.instance
