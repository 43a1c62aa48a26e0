"""Shared pytest fixtures and configuration for all tests."""

import os
import sqlite3
from collections.abc import Generator
from pathlib import Path
from typing import cast

import pytest
from _pytest.config import Config

from tests.utils.fake_provider import FakeTrackerProvider
from tracker_mirror.persistence import Repository, connect


def pytest_configure(config: Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark a test as a unit test")
    config.addinivalue_line(
        "markers",
        "integration: mark a test as an integration test against a live Jira",
    )
    config.addinivalue_line("markers", "slow: mark a test as slow-running")


def _env_flag(name: str, default: bool = False) -> bool:
    """Read boolean environment flag (true/false)."""
    val = os.environ.get(name, "true" if default else "false").strip().lower()
    return val in {"1", "true", "yes", "on"}


def pytest_collection_modifyitems(config: Config, items: list[pytest.Item]) -> None:
    """Apply default skipping for integration and unmarked tests.

    - Integration tests are skipped unless TM_RUN_INTEGRATION is true.
    - Unmarked tests are skipped unless TM_RUN_ALL_TESTS is true.
    """
    run_all = _env_flag("TM_RUN_ALL_TESTS", False)
    run_integration = _env_flag("TM_RUN_INTEGRATION", False) or run_all

    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled by default. Set TM_RUN_INTEGRATION=true to enable.",
    )
    skip_unmarked = pytest.mark.skip(
        reason="Unmarked test skipped by default. Mark with unit/integration or set TM_RUN_ALL_TESTS=true.",
    )

    for item in items:
        kws = item.keywords
        if "integration" in kws and not run_integration:
            item.add_marker(skip_integration)
            continue
        if not run_all and not any(m in kws for m in ("unit", "integration")):
            item.add_marker(skip_unmarked)


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None]:
    """Flag the session as a test run and restore the environment afterwards."""
    original_env = os.environ.copy()
    os.environ["TM_TEST_MODE"] = "true"

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def test_env() -> Generator[dict[str, str]]:
    """Fixture to control environment variables during a test.

    Yields:
        dict[str, str]: The live environment; changes are reverted afterwards

    """
    original_env = os.environ.copy()
    try:
        yield cast("dict[str, str]", os.environ)
    finally:
        os.environ.clear()
        os.environ.update(original_env)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a fresh mirror database file."""
    return tmp_path / "mirror.db"


@pytest.fixture
def connection(db_path: Path) -> Generator[sqlite3.Connection]:
    """Open a mirror database with its schema in place."""
    conn = connect(db_path)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def repository(connection: sqlite3.Connection) -> Repository:
    return Repository(connection)


@pytest.fixture
def provider() -> FakeTrackerProvider:
    """In-memory tracker with no issues."""
    return FakeTrackerProvider()
