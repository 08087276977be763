"""
SQLite storage for cmdhistory.

This module provides persistent storage for remotely-executed commands,
the invocations they spawned, and the output each invocation streams.
All history is stored in a single SQLite database file.

Design Principles:
    - Upsert: one row per command, each column written independently
    - Append-only output: stdout/stderr only ever grow at the end
    - Atomic: each call is one committed transaction, or nothing
    - Shared handle: one connection, serialized by a lock, usable from
      any thread

Tables:
    - commands: Metadata and invocation-list documents per command
    - invocations: Accumulated stdout/stderr per (command, instance)
"""

import sqlite3
import threading
from collections.abc import Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from pydantic import ValidationError

from cmdhistory.errors import (
    DecodeError,
    EncodeError,
    InvocationMismatchError,
    StorageClosedError,
    StorageOpenError,
    StorageReadError,
    StorageWriteError,
)
from cmdhistory.schema import (
    Command,
    HistoricalCommand,
    HistoricalOutput,
    HistoryConfig,
    Invocation,
    InvocationList,
    OutputChunk,
)

MEMORY_PATH = ":memory:"

# SQL for creating tables
CREATE_TABLES_SQL = """
-- Commands table: one row per command, documents stored as JSON
-- complete is reserved and not written by the store
CREATE TABLE IF NOT EXISTS commands (
    command_id TEXT PRIMARY KEY,
    command_json TEXT,
    invocations TEXT,
    complete BOOLEAN
);

-- Invocations table: accumulated output per target instance
CREATE TABLE IF NOT EXISTS invocations (
    command_id TEXT NOT NULL,
    instance_id TEXT NOT NULL,
    stdout TEXT NOT NULL DEFAULT '',
    stderr TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (command_id, instance_id)
);
"""

UPSERT_COMMAND_SQL = """
INSERT INTO commands (command_id, command_json) VALUES (?, ?)
ON CONFLICT (command_id) DO UPDATE SET command_json = excluded.command_json
"""

UPSERT_INVOCATIONS_SQL = """
INSERT INTO commands (command_id, invocations) VALUES (?, ?)
ON CONFLICT (command_id) DO UPDATE SET invocations = excluded.invocations
"""

APPEND_OUTPUT_SQL = """
INSERT INTO invocations (command_id, instance_id, stdout, stderr) VALUES (?, ?, ?, ?)
ON CONFLICT (command_id, instance_id) DO UPDATE SET
    stdout = invocations.stdout || excluded.stdout,
    stderr = invocations.stderr || excluded.stderr
"""


class HistoryDB:
    """
    SQLite database of remote command history.

    The handle may be shared between threads, e.g. one streaming handler
    per instance appending output while a UI thread reads. Every call
    runs under one lock, so a reader always sees a chunk either fully
    applied or not at all.

    Usage:
        db = HistoryDB("history.db")
        db.put_command("cmd-1", command=command)
        db.put_command("cmd-1", invocations=invocations)
        db.append_output("cmd-1", "i-1", stdout_chunk="hello ")
        db.get_outputs("cmd-1")
        db.close()

    Or use as context manager:
        with HistoryDB("history.db") as db:
            ...

    Appends are not idempotent: delivering the same chunk twice stores it
    twice. Callers that need exactly-once output must deduplicate and
    order chunks before appending.
    """

    def __init__(self, db_path: str | Path, timeout: float = 5.0) -> None:
        """
        Open the database, creating the file and schema if needed.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
            timeout: Seconds to wait on a lock held by another process.

        Raises:
            StorageOpenError: If the file cannot be opened or the schema
                cannot be applied.
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self._connect()
        self._init_schema()

    @classmethod
    def from_config(cls, config: HistoryConfig) -> "HistoryDB":
        """Open the database described by a HistoryConfig."""
        return cls(config.db_path, timeout=config.timeout_seconds)

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            if str(self.db_path) != MEMORY_PATH:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.timeout,
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
        except (sqlite3.Error, OSError) as e:
            raise StorageOpenError(
                operation="connect",
                db_path=str(self.db_path),
                underlying_error=str(e),
            ) from e

    def _init_schema(self) -> None:
        """Create tables if they don't exist yet."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()
            self._conn.commit()
        except sqlite3.Error as e:
            self.close()
            raise StorageOpenError(
                operation="init_schema",
                db_path=str(self.db_path),
                underlying_error=str(e),
            ) from e

    def _require_conn(self, operation: str) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageClosedError(operation=operation)
        return self._conn

    @contextmanager
    def transaction(self, operation: str) -> Generator[sqlite3.Connection, None, None]:
        """
        Run a block as one locked, committed transaction.

        Rolls back and re-raises on any exception, leaving previously
        committed state untouched.
        """
        with self._lock:
            conn = self._require_conn(operation)
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._conn is None

    def close(self) -> None:
        """Close the database connection. Further calls are no-ops."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "HistoryDB":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    # =========================================================================
    # Command Operations
    # =========================================================================

    def put_command(
        self,
        command_id: str,
        command: Command | Mapping[str, Any] | None = None,
        invocations: Sequence[Invocation | Mapping[str, Any]] | None = None,
    ) -> None:
        """
        Record the metadata and/or invocation list of a command.

        Each supplied document overwrites its own column only; a column
        that isn't supplied keeps its stored value. Calling with neither
        document is a no-op.

        Args:
            command_id: Key the documents are stored under
            command: Command metadata (model or raw mapping)
            invocations: Invocation descriptors; every entry must belong
                to command_id

        Raises:
            EncodeError: If a document fails validation or serialization
            InvocationMismatchError: If a document names another command
            StorageWriteError: If the database rejects the write
        """
        self._require_conn("put_command")

        command_json = None
        invocations_json = None
        if command is not None:
            command_json = _encode_command(command_id, command)
        if invocations:
            invocations_json = _encode_invocations(command_id, invocations)

        if command_json is None and invocations_json is None:
            return

        try:
            with self.transaction("put_command") as conn:
                if command_json is not None:
                    conn.execute(UPSERT_COMMAND_SQL, (command_id, command_json))
                if invocations_json is not None:
                    conn.execute(UPSERT_INVOCATIONS_SQL, (command_id, invocations_json))
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="put_command",
                underlying_error=str(e),
            ) from e

    def list_commands(self) -> list[HistoricalCommand]:
        """
        List every stored command.

        Order is unspecified. A single undecodable row fails the whole
        call.

        Raises:
            DecodeError: If any stored document cannot be decoded
            StorageReadError: If the query fails
        """
        rows = self._fetch_all(
            "list_commands",
            "SELECT command_id, command_json, invocations FROM commands",
            (),
        )
        return [_decode_command_row(row) for row in rows]

    def get_command(self, command_id: str) -> HistoricalCommand | None:
        """
        Get one stored command.

        Args:
            command_id: The command to look up

        Returns:
            HistoricalCommand or None if nothing was recorded for it
        """
        rows = self._fetch_all(
            "get_command",
            "SELECT command_id, command_json, invocations FROM commands WHERE command_id = ?",
            (command_id,),
        )
        if not rows:
            return None
        return _decode_command_row(rows[0])

    # =========================================================================
    # Output Operations
    # =========================================================================

    def append_output(
        self,
        command_id: str,
        instance_id: str,
        stdout_chunk: str = "",
        stderr_chunk: str = "",
    ) -> None:
        """
        Append streamed output to an invocation.

        The first call for a (command_id, instance_id) pair creates the
        row; later calls concatenate onto the end of each stream. Both
        streams change in the same statement, so a reader never sees one
        updated without the other.

        Chunks are stored in call order. Callers with several producers
        for the same instance must serialize them to keep output ordered.

        Raises:
            StorageWriteError: If the database rejects the write
        """
        try:
            with self.transaction("append_output") as conn:
                conn.execute(
                    APPEND_OUTPUT_SQL,
                    (command_id, instance_id, stdout_chunk or "", stderr_chunk or ""),
                )
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="append_output",
                underlying_error=str(e),
            ) from e

    def append_chunk(self, chunk: OutputChunk) -> None:
        """Append one streamed output event."""
        self.append_output(
            chunk.command_id,
            chunk.instance_id,
            stdout_chunk=chunk.stdout_chunk,
            stderr_chunk=chunk.stderr_chunk,
        )

    def get_outputs(self, command_id: str) -> list[HistoricalOutput]:
        """
        Get the accumulated output of every invocation of a command.

        Args:
            command_id: The command to get output for

        Returns:
            One HistoricalOutput per instance (unordered); empty if no
            output was recorded
        """
        rows = self._fetch_all(
            "get_outputs",
            "SELECT instance_id, stdout, stderr FROM invocations WHERE command_id = ?",
            (command_id,),
        )
        return [
            HistoricalOutput(
                command_id=command_id,
                instance_id=row["instance_id"],
                stdout=row["stdout"] or "",
                stderr=row["stderr"] or "",
            )
            for row in rows
        ]

    def _fetch_all(self, operation: str, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        with self._lock:
            conn = self._require_conn(operation)
            try:
                return conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageReadError(
                    operation=operation,
                    underlying_error=str(e),
                ) from e


# =============================================================================
# Document Encoding
# =============================================================================

# ValidationError and PydanticSerializationError are both ValueErrors


def _encode_command(command_id: str, command: Command | Mapping[str, Any]) -> str:
    try:
        if not isinstance(command, Command):
            command = Command.model_validate(command)
        if command.command_id != command_id:
            raise InvocationMismatchError(
                command_id=command_id,
                found_command_id=command.command_id,
            )
        return command.model_dump_json(by_alias=True, exclude_unset=True)
    except ValueError as e:
        raise EncodeError(
            command_id=command_id,
            document="command",
            underlying_error=str(e),
        ) from e


def _encode_invocations(
    command_id: str,
    invocations: Sequence[Invocation | Mapping[str, Any]],
) -> str:
    try:
        validated = InvocationList.validate_python(list(invocations))
        for invocation in validated:
            if invocation.command_id != command_id:
                raise InvocationMismatchError(
                    command_id=command_id,
                    found_command_id=invocation.command_id,
                )
        return InvocationList.dump_json(validated, by_alias=True, exclude_unset=True).decode()
    except ValueError as e:
        raise EncodeError(
            command_id=command_id,
            document="invocations",
            underlying_error=str(e),
        ) from e


def _decode_command_row(row: sqlite3.Row) -> HistoricalCommand:
    command_id = row["command_id"]
    command = None
    invocations: list[Invocation] = []
    try:
        if row["command_json"] is not None:
            command = Command.model_validate_json(row["command_json"])
    except ValidationError as e:
        raise DecodeError(
            command_id=command_id,
            document="command",
            underlying_error=str(e),
        ) from e
    try:
        if row["invocations"] is not None:
            invocations = InvocationList.validate_json(row["invocations"])
    except ValidationError as e:
        raise DecodeError(
            command_id=command_id,
            document="invocations",
            underlying_error=str(e),
        ) from e
    return HistoricalCommand(command_id=command_id, command=command, invocations=invocations)
