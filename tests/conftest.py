"""Global pytest configuration and fixtures."""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from http_snapshotter import SnapshotMode, SnapshotSession
from tests.fixtures.env_helpers import empty_env, snapshot_env_vars
from tests.fixtures.http_helpers import http_mock_helpers
from tests.fixtures.sample_data import snapshot_document, xkcd_comic

pytest_plugins = ["pytester"]


@pytest.fixture
def snapshot_dir(tmp_path: Path) -> Path:
    """Empty snapshot directory for one test."""
    directory = tmp_path / "http-snapshots"
    directory.mkdir()
    return directory


@pytest.fixture
def make_session(snapshot_dir: Path) -> Callable[..., SnapshotSession]:
    """Factory for sessions rooted in the test's snapshot directory."""

    def factory(mode: SnapshotMode = SnapshotMode.READ, **kwargs: Any) -> SnapshotSession:
        return SnapshotSession(snapshot_dir, mode=mode, **kwargs)

    return factory


@pytest.fixture
def write_snapshot(snapshot_dir: Path) -> Callable[[str, dict[str, Any]], Path]:
    """Write a raw snapshot document below the snapshot directory."""

    def writer(relative_name: str, document: dict[str, Any]) -> Path:
        path = snapshot_dir / relative_name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        return path

    return writer
