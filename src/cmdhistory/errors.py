"""
Exception hierarchy for cmdhistory.

All cmdhistory exceptions inherit from CmdHistoryError, allowing callers to
catch every store failure with a single except clause.

Exception Categories:
    - DocumentError: A command or invocation document could not be
      encoded, decoded, or keyed
    - StorageError: The SQLite engine rejected an open, read, or write

The store never retries and never logs. Every error is raised to the
immediate caller, which decides whether to retry, report, or abort.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Document errors: 1xxx
ERROR_DOCUMENT_ENCODE = 1001
ERROR_DOCUMENT_DECODE = 1002
ERROR_DOCUMENT_MISMATCH = 1003

# Storage errors: 5xxx
ERROR_STORAGE_OPEN = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003
ERROR_STORAGE_CLOSED = 5004


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class CmdHistoryError(Exception):
    """
    Base exception for everything HistoryDB raises.

    Each subclass fills in its own code and message in __post_init__, so
    callers usually only pass the fields that describe the failure
    (command_id, operation, underlying_error).

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Document Errors
# =============================================================================


@dataclass
class DocumentError(CmdHistoryError):
    """
    Base class for command/invocation document errors.

    Attributes:
        command_id: The command the document belongs to
    """

    command_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["command_id"] = self.command_id


@dataclass
class EncodeError(DocumentError):
    """Raised when a document cannot be validated or serialized for storage."""

    document: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot encode {self.document} for {self.command_id}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_DOCUMENT_ENCODE
        super().__post_init__()
        self.context.update({
            "document": self.document,
            "underlying_error": self.underlying_error,
        })


@dataclass
class DecodeError(DocumentError):
    """
    Raised when a stored document cannot be deserialized.

    The query that hit the bad row fails as a whole; no partial result
    set is returned.
    """

    document: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot decode stored {self.document} for {self.command_id}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_DOCUMENT_DECODE
        if not self.suggestion:
            self.suggestion = "Re-record the command with put_command to overwrite the bad column"
        super().__post_init__()
        self.context.update({
            "document": self.document,
            "underlying_error": self.underlying_error,
        })


@dataclass
class InvocationMismatchError(DocumentError):
    """Raised when a document's command ID differs from the key it is stored under."""

    found_command_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Document for command {self.found_command_id!r} "
                f"cannot be stored under {self.command_id!r}"
            )
        if self.code == 0:
            self.code = ERROR_DOCUMENT_MISMATCH
        if not self.suggestion:
            self.suggestion = "Group invocations by command ID before recording them"
        super().__post_init__()
        self.context["found_command_id"] = self.found_command_id


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(CmdHistoryError):
    """
    Base class for failures of the SQLite handle itself.

    Raised for every HistoryDB operation the engine rejects: a closed
    handle, a lock held past the timeout, a full disk, a corrupt file.
    The failed call leaves committed history unchanged.

    Attributes:
        operation: The HistoryDB method that failed (e.g., "append_output")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageOpenError(StorageError):
    """Raised when the database cannot be opened or its schema applied."""

    db_path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to open history database {self.db_path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_OPEN
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid, writable, and not corrupt"
        super().__post_init__()
        self.context.update({
            "db_path": self.db_path,
            "underlying_error": self.underlying_error,
        })


@dataclass
class StorageWriteError(StorageError):
    """
    Raised when put_command or append_output is rejected by the engine.

    The transaction is rolled back first, so no chunk or document column
    is left half-written.
    """

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"History write failed in {self.operation or 'write'}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """
    Raised when a query cannot be executed, e.g. the database is locked
    by another process for longer than the configured timeout.
    """

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"History read failed in {self.operation or 'query'}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        if not self.suggestion:
            self.suggestion = "Retry once the other writer commits, or raise timeout_seconds"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageClosedError(StorageError):
    """Raised when an operation is attempted on a closed store."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot {self.operation or 'operate'}: history database is closed"
        if self.code == 0:
            self.code = ERROR_STORAGE_CLOSED
        if not self.suggestion:
            self.suggestion = "Open a new HistoryDB for this path"
        super().__post_init__()
