"""
Manages the SQLite journal that durably records in-flight operations so they can
be resumed or discarded after an unclean shutdown.
"""

import asyncio
import json
import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import BaseModel

from peertrack.exceptions import PersistenceError
from peertrack.models.checkpoint import (
    Checkpoint,
    CheckpointStatus,
    OperationType,
    parse_operation_type,
)
from peertrack.models.stats import JournalHealth

log = logging.getLogger(__name__)

_COLUMNS = (
    "id, operation_type, target_path, state_json, priority, failure_count,"
    " created_at, status"
)


def _to_db_timestamp(value: datetime) -> str:
    # Fixed-width UTC text so lexicographic order matches chronological order
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _row_to_checkpoint(row: tuple) -> Checkpoint:
    return Checkpoint(
        id=row[0],
        operation_type=parse_operation_type(row[1]),
        target_path=row[2],
        state_json=row[3],
        priority=row[4],
        failure_count=row[5],
        created_at=datetime.fromisoformat(row[6]),
        status=CheckpointStatus(row[7]),
    )


class CheckpointJournal:
    """
    A thread-safe SQLite journal of recovery checkpoints.

    Every call runs on a worker thread with its own connection, so the transfer
    engine can checkpoint itself concurrently with the recovery sweep. Storage
    failures are raised as PersistenceError; retry policy belongs to callers.
    """

    def __init__(self, data_dir_path: Path, pool_size: int = 5):
        self.db_path = data_dir_path / "recovery_journal.sqlite"
        self._pool_size = pool_size
        self._connection_semaphore = asyncio.Semaphore(pool_size)
        self._initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Gets a new database connection with optimized PRAGMA settings."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA temp_store=MEMORY;")
            return conn
        except sqlite3.Error as e:
            log.error(f"Failed to connect to recovery journal: {e}")
            raise PersistenceError(f"Cannot open journal '{self.db_path}': {e}") from e

    def _initialize_db(self) -> None:
        """Creates the database file, table and indexes if they don't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(
                f"Cannot create journal directory '{self.db_path.parent}': {e}"
            ) from e
        conn = self._get_connection()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS recovery_checkpoints (
                        id TEXT PRIMARY KEY NOT NULL,
                        operation_type TEXT NOT NULL,
                        target_path TEXT NOT NULL,
                        state_json TEXT NOT NULL,
                        priority INTEGER NOT NULL DEFAULT 0,
                        failure_count INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL,
                        status INTEGER NOT NULL DEFAULT 0
                    );
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_recovery_order ON"
                    " recovery_checkpoints(status, priority DESC, created_at);"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_recovery_target ON"
                    " recovery_checkpoints(target_path);"
                )
        except sqlite3.Error as e:
            log.error(f"Failed to initialize journal at '{self.db_path}': {e}")
            raise PersistenceError(f"Cannot initialize journal: {e}") from e
        finally:
            conn.close()

    async def _run_in_executor(self, func, *args):
        """Runs a synchronous database function within the connection pool semaphore."""
        async with self._connection_semaphore:
            return await asyncio.to_thread(func, *args)

    def _execute_write(self, query: str, params: tuple) -> int:
        """Runs a single write statement in its own transaction, returning rowcount."""
        conn = self._get_connection()
        try:
            with conn:
                return conn.execute(query, params).rowcount
        except sqlite3.Error as e:
            log.error(f"Journal write failed: {e}")
            raise PersistenceError(f"Journal write failed: {e}") from e
        finally:
            conn.close()

    def _fetch_all(self, query: str, params: tuple = ()) -> list[tuple]:
        conn = self._get_connection()
        try:
            return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            log.error(f"Journal read failed: {e}")
            raise PersistenceError(f"Journal read failed: {e}") from e
        finally:
            conn.close()

    def _upsert_sync(self, checkpoint: Checkpoint) -> str:
        self._execute_write(
            f"""
            INSERT INTO recovery_checkpoints ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                operation_type = excluded.operation_type,
                target_path = excluded.target_path,
                state_json = excluded.state_json,
                priority = excluded.priority,
                failure_count = excluded.failure_count,
                status = excluded.status
            """,  # noqa: S608
            (
                checkpoint.id,
                checkpoint.type_name,
                checkpoint.target_path,
                checkpoint.state_json,
                checkpoint.priority,
                checkpoint.failure_count,
                _to_db_timestamp(checkpoint.created_at),
                int(checkpoint.status),
            ),
        )
        log.debug(
            f"Logged checkpoint: {checkpoint.type_name} - {checkpoint.target_path} "
            f"(priority {checkpoint.priority}, failures {checkpoint.failure_count})"
        )
        return checkpoint.id

    async def upsert(self, checkpoint: Checkpoint) -> str:
        """
        Inserts or replaces a checkpoint by id. The original creation time is
        preserved when the row already exists.
        """
        return await self._run_in_executor(self._upsert_sync, checkpoint)

    def _pending_sync(self) -> list[Checkpoint]:
        rows = self._fetch_all(
            f"""
            SELECT {_COLUMNS}
            FROM recovery_checkpoints
            WHERE status = ?
            ORDER BY priority DESC, created_at ASC
            """,  # noqa: S608
            (int(CheckpointStatus.PENDING),),
        )
        return [_row_to_checkpoint(row) for row in rows]

    async def pending_checkpoints(self) -> list[Checkpoint]:
        """
        Returns a snapshot of all pending checkpoints, highest priority first and
        oldest first within a priority.
        """
        return await self._run_in_executor(self._pending_sync)

    def _get_sync(self, checkpoint_id: str) -> Checkpoint | None:
        rows = self._fetch_all(
            f"SELECT {_COLUMNS} FROM recovery_checkpoints WHERE id = ?",  # noqa: S608
            (checkpoint_id,),
        )
        return _row_to_checkpoint(rows[0]) if rows else None

    async def get(self, checkpoint_id: str) -> Checkpoint | None:
        """Fetches a single checkpoint regardless of its status."""
        return await self._run_in_executor(self._get_sync, checkpoint_id)

    def _complete_sync(self, checkpoint_id: str) -> bool:
        rows = self._execute_write(
            "UPDATE recovery_checkpoints SET status = ? WHERE id = ? AND status = ?",
            (
                int(CheckpointStatus.COMPLETED),
                checkpoint_id,
                int(CheckpointStatus.PENDING),
            ),
        )
        if rows > 0:
            log.debug(f"Completed checkpoint: {checkpoint_id}")
        return rows > 0

    async def complete(self, checkpoint_id: str) -> bool:
        """
        Marks a checkpoint as completed. Unknown or already completed ids are a
        no-op; returns whether a pending row was changed.
        """
        return await self._run_in_executor(self._complete_sync, checkpoint_id)

    def _prune_stale_sync(self, max_age: timedelta) -> int:
        cutoff = _to_db_timestamp(datetime.now(timezone.utc) - max_age)
        pruned = self._execute_write(
            "UPDATE recovery_checkpoints SET status = ?"
            " WHERE status = ? AND created_at < ?",
            (int(CheckpointStatus.COMPLETED), int(CheckpointStatus.PENDING), cutoff),
        )
        if pruned > 0:
            hours = max_age.total_seconds() / 3600
            log.warning(
                f"[yellow]Pruned {pruned} stale checkpoint(s) older than "
                f"{hours:g} hours.[/yellow]"
            )
        return pruned

    async def prune_stale(self, max_age: timedelta) -> int:
        """Completes every pending checkpoint created more than `max_age` ago."""
        return await self._run_in_executor(self._prune_stale_sync, max_age)

    def _update_progress_sync(self, checkpoint_id: str, state_json: str) -> bool:
        rows = self._execute_write(
            "UPDATE recovery_checkpoints SET state_json = ?"
            " WHERE id = ? AND status = ?",
            (state_json, checkpoint_id, int(CheckpointStatus.PENDING)),
        )
        return rows > 0

    async def update_progress(
        self,
        checkpoint_id: str,
        state_json: str,
        previous_bytes: int,
        current_bytes: int,
    ) -> bool:
        """
        Heartbeat from the transfer engine. Skips the write entirely when no bytes
        were added since the previous heartbeat.
        """
        if previous_bytes == current_bytes:
            log.debug(f"Skipping progress update for {checkpoint_id}: no new bytes")
            return False
        return await self._run_in_executor(
            self._update_progress_sync, checkpoint_id, state_json
        )

    async def confirmed_bytes(self, checkpoint_id: str) -> int:
        """
        Returns the `bytes_downloaded` recorded in a checkpoint's payload, or 0
        when the checkpoint is missing or its payload is unreadable.
        """
        checkpoint = await self.get(checkpoint_id)
        if checkpoint is None:
            return 0
        try:
            payload = json.loads(checkpoint.state_json)
            return int(payload.get("bytes_downloaded", 0))
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            log.warning(f"Failed to read confirmed bytes for {checkpoint_id}: {e}")
            return 0

    def _reset_failures_sync(self, target_path: str) -> int:
        # Re-armed rows restart their age so stale pruning skips them
        rows = self._execute_write(
            "UPDATE recovery_checkpoints SET failure_count = 0, status = ?,"
            " created_at = ? WHERE target_path = ?",
            (
                int(CheckpointStatus.PENDING),
                _to_db_timestamp(datetime.now(timezone.utc)),
                target_path,
            ),
        )
        if rows > 0:
            log.info(f"Reset failure count for {rows} checkpoint(s): {target_path}")
        return rows

    async def reset_failure_count(self, target_path: str) -> int:
        """Re-arms every checkpoint for a target path for the next sweep."""
        return await self._run_in_executor(self._reset_failures_sync, target_path)

    def _health_sync(self) -> JournalHealth:
        rows = self._fetch_all(
            "SELECT status, COUNT(*) FROM recovery_checkpoints GROUP BY status"
        )
        health = JournalHealth()
        for status, count in rows:
            if status == CheckpointStatus.PENDING:
                health.pending = count
            elif status == CheckpointStatus.COMPLETED:
                health.completed = count
        return health

    async def get_health(self) -> JournalHealth:
        """Counts checkpoints per status."""
        return await self._run_in_executor(self._health_sync)

    def _purge_completed_sync(self) -> int:
        return self._execute_write(
            "DELETE FROM recovery_checkpoints WHERE status = ?",
            (int(CheckpointStatus.COMPLETED),),
        )

    async def purge_completed(self) -> int:
        """Physically deletes completed rows."""
        return await self._run_in_executor(self._purge_completed_sync)

    def _vacuum_sync(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("VACUUM;")
            conn.execute("ANALYZE;")
            conn.commit()
            log.info("Recovery journal optimized successfully.")
        except sqlite3.Error as e:
            log.error(f"Journal vacuum failed: {e}")
            raise PersistenceError(f"Journal vacuum failed: {e}") from e
        finally:
            conn.close()

    async def vacuum(self) -> None:
        """Optimizes the database file by rebuilding it."""
        await self._run_in_executor(self._vacuum_sync)

    @asynccontextmanager
    async def checkpoint(
        self,
        operation_type: OperationType,
        target_path: str,
        state: BaseModel,
        priority: int = 0,
    ) -> AsyncIterator[Checkpoint]:
        """
        Journals an operation for the duration of a block.

        The checkpoint is written before the block runs and completed when it
        exits normally. If the block raises, the checkpoint stays pending so the
        next startup sweep can deal with it.

        Usage:
            async with journal.checkpoint(OperationType.DOWNLOAD, path, state) as cp:
                ...
        """
        record = Checkpoint.for_operation(operation_type, target_path, state, priority)
        await self.upsert(record)
        yield record
        await self.complete(record.id)
