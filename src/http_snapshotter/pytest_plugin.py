"""Pytest integration for HTTP snapshots.

Enable it from a ``conftest.py``:

    pytest_plugins = ["http_snapshotter.pytest_plugin"]

Usage:
    # Default behavior - replay existing snapshots, no network calls
    pytest

    # Record snapshots from live API calls, overwriting existing ones
    pytest --snapshot-mode=update

    # Record only the snapshots that are missing
    pytest --snapshot-mode=append

Tests opt in by requesting the ``http_snapshots`` fixture. Use
``@pytest.mark.snapshot_case("name")`` to keep a test's snapshots in their
own sub-directory.
"""

import asyncio
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from .config import RequestLogLevel, SnapshotMode, SnapshotSettings
from .http_interceptor import HTTPInterceptor
from .session import SnapshotSession


def pytest_addoption(parser: Any) -> None:
    """Add command line options for snapshot testing."""
    group = parser.getgroup("http-snapshots")
    group.addoption(
        "--snapshot-mode",
        action="store",
        default=None,
        choices=[mode.value for mode in SnapshotMode],
        help="read (default), update, append or ignore HTTP snapshots",
    )
    group.addoption(
        "--snapshot-dir",
        action="store",
        default=None,
        help="Directory holding HTTP snapshot files",
    )


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers", "snapshot_case(name): store the test's HTTP snapshots in a sub-directory"
    )


def settings_from_config(config: Any) -> SnapshotSettings:
    """Environment settings overridden by command line options."""
    settings = SnapshotSettings.from_env()
    updates: dict[str, Any] = {}
    if config.getoption("--snapshot-mode"):
        updates["mode"] = SnapshotMode.parse(config.getoption("--snapshot-mode"))
    if config.getoption("--snapshot-dir"):
        updates["snapshot_dir"] = Path(config.getoption("--snapshot-dir"))
    if updates:
        settings = settings.model_copy(update=updates)
    return settings


@pytest.fixture(scope="session")
def http_snapshot_session(pytestconfig: Any) -> Generator[SnapshotSession, None, None]:
    """One snapshot session for the whole test run."""
    session = settings_from_config(pytestconfig).create_session()
    yield session
    asyncio.run(session.finalize())


@pytest.fixture
def http_snapshots(
    request: Any, http_snapshot_session: SnapshotSession
) -> Generator[SnapshotSession, None, None]:
    """Intercept httpx requests of one test with the snapshot session."""
    marker = request.node.get_closest_marker("snapshot_case")
    if marker is not None:
        http_snapshot_session.start_test_case(marker.args[0])
    try:
        with HTTPInterceptor(http_snapshot_session):
            yield http_snapshot_session
    finally:
        if marker is not None:
            http_snapshot_session.end_test_case()


@pytest.fixture(scope="session")
def http_backend_info(http_snapshot_session: SnapshotSession) -> dict[str, str]:
    """Describe the snapshot mode of the current run."""
    descriptions = {
        SnapshotMode.READ: "Using saved snapshots (default)",
        SnapshotMode.UPDATE: "Recording new snapshots",
        SnapshotMode.APPEND: "Recording missing snapshots",
        SnapshotMode.IGNORE: "Live network, snapshots ignored",
    }
    mode = http_snapshot_session.mode
    info = {"type": mode.value, "description": descriptions[mode]}
    if http_snapshot_session.log_requests is not RequestLogLevel.OFF:
        info["request_logging"] = http_snapshot_session.log_requests.value
    return info
