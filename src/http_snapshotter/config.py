"""
Configuration for the snapshot engine.

Settings are read from environment variables, optionally seeded from a
``.env`` file:

    SNAPSHOT      read (default) / update / append / ignore
    SNAPSHOT_DIR  directory holding snapshot files
    LOG_SNAPSHOT  any non-empty value logs every snapshot read and write
    LOG_REQ       1 or summary / detailed, logs every observed request
"""

import logging
import os
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from pydantic import BaseModel

if TYPE_CHECKING:
    from .session import SnapshotSession

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_DIR = "tests/http-snapshots"
UNUSED_SNAPSHOTS_REPORT = "unused-snapshots.log"


class SnapshotMode(str, Enum):
    """Operating modes, selected once per process."""

    READ = "read"
    UPDATE = "update"
    APPEND = "append"
    IGNORE = "ignore"

    @classmethod
    def parse(cls, value: str | None) -> "SnapshotMode":
        """Parse a mode name, falling back to read mode for unknown values."""
        if not value:
            return cls.READ
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.warning(f"Unknown snapshot mode {value!r}, falling back to 'read'")
            return cls.READ


class RequestLogLevel(str, Enum):
    """How much of each observed request is logged."""

    OFF = "off"
    SUMMARY = "summary"
    DETAILED = "detailed"

    @classmethod
    def parse(cls, value: str | None) -> "RequestLogLevel":
        if value in ("1", "summary"):
            return cls.SUMMARY
        if value == "detailed":
            return cls.DETAILED
        return cls.OFF


class SnapshotSettings(BaseModel):
    """Settings for one snapshot session."""

    snapshot_dir: Path = Path(DEFAULT_SNAPSHOT_DIR)
    mode: SnapshotMode = SnapshotMode.READ
    log_snapshots: bool = False
    log_requests: RequestLogLevel = RequestLogLevel.OFF

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SnapshotSettings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from, defaults to ``os.environ``

        Returns:
            Parsed settings
        """
        env = os.environ if environ is None else environ
        return cls(
            snapshot_dir=Path(env.get("SNAPSHOT_DIR") or DEFAULT_SNAPSHOT_DIR),
            mode=SnapshotMode.parse(env.get("SNAPSHOT")),
            log_snapshots=bool(env.get("LOG_SNAPSHOT")),
            log_requests=RequestLogLevel.parse(env.get("LOG_REQ")),
        )

    def create_session(self) -> "SnapshotSession":
        """Create a session configured with these settings."""
        from .session import SnapshotSession

        return SnapshotSession(
            Path(self.snapshot_dir).resolve(),
            mode=self.mode,
            log_snapshots=self.log_snapshots,
            log_requests=self.log_requests,
        )


def load_settings(env_file: str | Path | None = None) -> SnapshotSettings:
    """Load a ``.env`` file, if any, then read settings from the environment.

    Values already present in the environment win over the file.
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()
    return SnapshotSettings.from_env()
