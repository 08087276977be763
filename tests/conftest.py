"""
Pytest configuration and fixtures for cmdhistory tests.

This module provides shared fixtures used across unit and integration
tests.
"""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from cmdhistory.schema import Command, Invocation
from cmdhistory.store import HistoryDB


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """Return a path for a history database that doesn't exist yet."""
    return temp_dir / "history.db"


@pytest.fixture
def db(db_path: Path) -> Generator[HistoryDB, None, None]:
    """Create a history database instance."""
    database = HistoryDB(db_path)
    yield database
    database.close()


@pytest.fixture
def sample_command() -> Command:
    """Return a command document as the remote service reports it."""
    return Command(
        command_id="cmd-1",
        document_name="AWS-RunShellScript",
        status="InProgress",
        instance_ids=["i-1", "i-2"],
        parameters={"commands": ["uptime"]},
        requested_date_time="2026-10-19T09:30:00+00:00",
    )


@pytest.fixture
def sample_invocations() -> list[Invocation]:
    """Return the invocations spawned by sample_command."""
    return [
        Invocation(command_id="cmd-1", instance_id="i-1", status="InProgress"),
        Invocation(command_id="cmd-1", instance_id="i-2", status="Pending"),
    ]


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a simple config YAML for testing."""
    return """
db_path: ./history.db
timeout_seconds: 2.5
"""
