"""
Schema definitions for cmdhistory.

This module defines the Pydantic models used throughout cmdhistory:
- Command/Invocation/CommandPlugin: Documents reported by the remote
  execution service
- OutputChunk: One streamed stdout/stderr fragment for an invocation
- HistoricalCommand/HistoricalOutput: Typed read views returned by the store
- HistoryConfig: Where the history database lives and how long to wait on it

Design Decisions:
    - Remote documents keep unknown fields (extra="allow") so the store
      never drops data the service reports
    - Remote documents serialize with PascalCase keys, the shape the
      service uses on the wire; snake_case names are accepted on input
    - Timestamps the service reports (RequestedDateTime, ExpiresAfter,
      ResponseStartDateTime, ResponseFinishDateTime) are typed datetime,
      so they decode back to datetime. Unknown fields only round-trip as
      JSON values: a datetime in an unknown field comes back as an ISO
      string
    - Read views and config are strict (extra="forbid")
"""

from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_pascal


# =============================================================================
# Remote Documents
# =============================================================================


class Command(BaseModel):
    """
    One remote-execution request as reported by the execution service.

    Only command_id is required; everything else is whatever the service
    chose to report. The store treats the document as opaque and replaces
    it wholesale on every write.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        alias_generator=to_pascal,
        populate_by_name=True,
    )

    command_id: str = Field(..., description="Stable identifier of the command", min_length=1)
    document_name: str | None = Field(default=None, description="Document the command runs")
    comment: str | None = None
    status: str | None = Field(default=None, description="Service-reported status")
    status_details: str | None = None
    instance_ids: list[str] = Field(default_factory=list, description="Explicit target instances")
    targets: list[dict[str, Any]] = Field(default_factory=list, description="Tag-based targets")
    parameters: dict[str, list[str]] = Field(default_factory=dict)
    requested_date_time: datetime | None = None
    expires_after: datetime | None = None
    target_count: int | None = None
    completed_count: int | None = None
    error_count: int | None = None
    output_s3_bucket_name: str | None = None


class CommandPlugin(BaseModel):
    """One step (plugin) of an invocation's document, with its own timing and output."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        alias_generator=to_pascal,
        populate_by_name=True,
    )

    name: str | None = None
    status: str | None = None
    response_code: int | None = None
    response_start_date_time: datetime | None = None
    response_finish_date_time: datetime | None = None
    output: str | None = None


class Invocation(BaseModel):
    """The execution of a command against one target instance."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        alias_generator=to_pascal,
        populate_by_name=True,
    )

    command_id: str = Field(..., description="Command this invocation belongs to", min_length=1)
    instance_id: str = Field(..., description="Target instance", min_length=1)
    instance_name: str | None = None
    document_name: str | None = None
    status: str | None = None
    status_details: str | None = None
    requested_date_time: datetime | None = None
    command_plugins: list[CommandPlugin] = Field(default_factory=list)


class OutputChunk(BaseModel):
    """
    An incremental stdout/stderr fragment streamed by a running invocation.

    Either chunk may be empty; an empty chunk leaves that stream untouched.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_pascal,
        populate_by_name=True,
    )

    command_id: str = Field(..., min_length=1)
    instance_id: str = Field(..., min_length=1)
    stdout_chunk: str = ""
    stderr_chunk: str = ""


# Invocation lists are stored as one JSON document per command
InvocationList = TypeAdapter(list[Invocation])


# =============================================================================
# Read Views
# =============================================================================


class HistoricalCommand(BaseModel):
    """
    A stored command with its decoded metadata and invocation list.

    Attributes:
        command_id: Key the row is stored under
        command: Latest metadata document, None if never recorded
        invocations: Latest invocation list, empty if never recorded
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    command_id: str
    command: Command | None = None
    invocations: list[Invocation] = Field(default_factory=list)


class HistoricalOutput(BaseModel):
    """Full accumulated output of one invocation (not a delta)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    command_id: str
    instance_id: str
    stdout: str = ""
    stderr: str = ""


# =============================================================================
# Configuration
# =============================================================================


class HistoryConfig(BaseModel):
    """
    Location and locking behavior of a history database.

    Attributes:
        db_path: SQLite file path (":memory:" for a throwaway store)
        timeout_seconds: How long a write waits on another process's lock
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    db_path: str = Field(default="cmdhistory.db", min_length=1)
    timeout_seconds: float = Field(default=5.0, ge=0)


def load_config(path: Path | str) -> HistoryConfig:
    """
    Load a history config from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated HistoryConfig object (defaults if the file is empty)

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    return HistoryConfig.model_validate(data or {})


def load_config_from_string(content: str) -> HistoryConfig:
    """Load a history config from a YAML string."""
    data = yaml.safe_load(content)
    return HistoryConfig.model_validate(data or {})
