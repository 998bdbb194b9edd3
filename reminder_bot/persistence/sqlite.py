import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from aiosqlite import Connection, Error as SqliteError, Row, connect as sqlite_connect
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from reminder_bot.helpers.config_models.database import SqliteModel
from reminder_bot.helpers.errors import BackendUnavailableError
from reminder_bot.helpers.logging import logger
from reminder_bot.models.readiness import ReadinessEnum
from reminder_bot.models.reminder import ReminderModel, ReminderPatchModel
from reminder_bot.persistence.istore import IStore

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_FLAG_COLUMNS = {"is_completed", "is_notified"}

# Retry when the database is locked by a concurrent writer
_retry_locked = retry(
    reraise=True,
    retry=retry_if_exception_type(BackendUnavailableError),
    stop=stop_after_attempt(3),
    wait=wait_random_exponential(multiplier=0.2, max=2),
)


class SqliteStore(IStore):
    _config: SqliteModel
    _db_path: str
    _init_done: bool

    def __init__(self, config: SqliteModel):
        logger.info("Using SQLite database at %s with table %s", config.path, config.table)
        self._config = config
        self._db_path = self._config.full_path()
        self._init_done = False

        # Create folder if does not exist
        db_folder = os.path.dirname(self._db_path)
        if db_folder:
            os.makedirs(name=db_folder, exist_ok=True)

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the SQLite database.

        This checks if the database is reachable and can be queried.
        """
        try:
            async with self._use_db() as db:
                await db.execute("SELECT 1")
            return ReadinessEnum.OK
        except BackendUnavailableError:
            logger.exception("Error requesting SQLite")
        return ReadinessEnum.FAIL

    @_retry_locked
    async def reminder_create(self, reminder: ReminderModel) -> ReminderModel:
        logger.debug("Saving reminder %s", reminder.reminder_id)
        async with self._use_db() as db:
            await db.execute(
                f"INSERT INTO {self._config.table} (id, owner_id, body, due_at, created_at, is_completed, is_notified) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    reminder.reminder_id,
                    reminder.owner_id,
                    reminder.body,
                    _to_db(reminder.due_at),
                    _to_db(reminder.created_at),
                    int(reminder.is_completed),
                    int(reminder.is_notified),
                ),
            )
        return reminder

    @_retry_locked
    async def reminder_get(self, reminder_id: str) -> ReminderModel | None:
        logger.debug("Loading reminder %s", reminder_id)
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT * FROM {self._config.table} WHERE id = ?",
                (reminder_id,),
            )
            row = await cursor.fetchone()
        return _from_row(row) if row else None

    @_retry_locked
    async def reminder_search_pending(self, owner_id: str) -> list[ReminderModel]:
        logger.debug("Searching pending reminders for %s", owner_id)
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT * FROM {self._config.table} WHERE owner_id = ? AND is_completed = 0 ORDER BY due_at ASC",
                (owner_id,),
            )
            rows = await cursor.fetchall()
        return [_from_row(row) for row in rows]

    @_retry_locked
    async def reminder_search_due(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> list[ReminderModel]:
        logger.debug("Searching reminders due between %s and %s", window_start, window_end)
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT * FROM {self._config.table} WHERE due_at > ? AND due_at <= ? AND is_notified = 0 AND is_completed = 0",
                (
                    _to_db(window_start),
                    _to_db(window_end),
                ),
            )
            rows = await cursor.fetchall()
        return [_from_row(row) for row in rows]

    @_retry_locked
    async def reminder_update(
        self,
        reminder_id: str,
        owner_id: str,
        patch: ReminderPatchModel,
        expected: ReminderPatchModel | None = None,
    ) -> ReminderModel | None:
        changes = patch.as_flags()
        conditions = expected.as_flags() if expected else {}
        if not changes:
            raise ValueError("Patch is empty")
        # Column names are inlined in the query, only known flags are allowed
        if not set(changes) | set(conditions) <= _FLAG_COLUMNS:
            raise ValueError(f"Unknown columns {set(changes) | set(conditions) - _FLAG_COLUMNS}")

        set_clause = ", ".join(f"{column} = ?" for column in changes)
        where_clause = " AND ".join(
            ["id = ?", "owner_id = ?"] + [f"{column} = ?" for column in conditions]
        )
        async with self._use_db() as db:
            # Single statement, the compare-and-set is atomic
            cursor = await db.execute(
                f"UPDATE {self._config.table} SET {set_clause} WHERE {where_clause}",
                (
                    *(int(value) for value in changes.values()),
                    reminder_id,
                    owner_id,
                    *(int(value) for value in conditions.values()),
                ),
            )
            if cursor.rowcount != 1:
                logger.debug("Reminder %s not updated, no match", reminder_id)
                return None
            cursor = await db.execute(
                f"SELECT * FROM {self._config.table} WHERE id = ?",
                (reminder_id,),
            )
            row = await cursor.fetchone()
        return _from_row(row) if row else None

    @_retry_locked
    async def reminder_delete(
        self,
        reminder_id: str,
        owner_id: str,
    ) -> ReminderModel | None:
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT * FROM {self._config.table} WHERE id = ? AND owner_id = ?",
                (reminder_id, owner_id),
            )
            row = await cursor.fetchone()
            if not row:
                return None
            await db.execute(
                f"DELETE FROM {self._config.table} WHERE id = ? AND owner_id = ?",
                (reminder_id, owner_id),
            )
        return _from_row(row)

    async def _init_db(self, db: Connection) -> None:
        """
        Initialize the database.

        See: https://sqlite.org/cgi/src/doc/wal2/doc/wal2.md
        """
        logger.info("First run, init database")
        # Optimize performance for concurrent writes
        await db.execute("PRAGMA journal_mode=WAL")
        # Create table
        await db.execute(
            f"CREATE TABLE IF NOT EXISTS {self._config.table} (id VARCHAR(36) PRIMARY KEY, owner_id TEXT NOT NULL, body TEXT NOT NULL, due_at INTEGER NOT NULL, created_at INTEGER NOT NULL, is_completed INTEGER NOT NULL DEFAULT 0, is_notified INTEGER NOT NULL DEFAULT 0)"
        )
        # Create indexes
        await db.execute(
            f"CREATE INDEX IF NOT EXISTS {self._config.table}_owner_pending ON {self._config.table} (owner_id, is_completed, due_at)"
        )
        await db.execute(
            f"CREATE INDEX IF NOT EXISTS {self._config.table}_due ON {self._config.table} (due_at, is_notified, is_completed)"
        )

    @asynccontextmanager
    async def _use_db(self) -> AsyncGenerator[Connection]:
        """
        Generate the SQLite client and close it after use.

        All statements of a block run in one immediate transaction, committed at the end. SQLite errors are raised as `BackendUnavailableError`.
        """
        try:
            async with sqlite_connect(
                database=self._db_path,
                isolation_level=None,  # Transactions are explicit
                timeout=5,
            ) as db:
                db.row_factory = Row
                if not self._init_done:
                    await self._init_db(db)
                    self._init_done = True
                await db.execute("BEGIN IMMEDIATE")
                try:
                    yield db
                except BaseException:
                    await db.rollback()
                    raise
                await db.commit()
        except SqliteError as e:
            raise BackendUnavailableError(f"SQLite error: {e}") from e


def _to_db(value: datetime) -> int:
    """
    Serialize a timestamp as microseconds since epoch, which keeps the SQL ordering exact.
    """
    return (value - _EPOCH) // timedelta(microseconds=1)


def _from_row(row: Row) -> ReminderModel:
    return ReminderModel(
        body=row["body"],
        created_at=_EPOCH + timedelta(microseconds=row["created_at"]),
        due_at=_EPOCH + timedelta(microseconds=row["due_at"]),
        is_completed=bool(row["is_completed"]),
        is_notified=bool(row["is_notified"]),
        owner_id=row["owner_id"],
        reminder_id=row["id"],
    )
