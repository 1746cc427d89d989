"""Tracks consulted snapshot files and reports the unused ones."""

import asyncio
import logging
from pathlib import Path

from .closest_match import list_files
from .config import UNUSED_SNAPSHOTS_REPORT

logger = logging.getLogger(__name__)


class UsageTracker:
    """Remembers which snapshot files were read during the process."""

    def __init__(self, snapshot_dir: Path, report_name: str = UNUSED_SNAPSHOTS_REPORT):
        self.snapshot_dir = Path(snapshot_dir)
        self.report_name = report_name
        self.read_files: set[str] = set()
        self._reported = False

    @property
    def report_path(self) -> Path:
        return self.snapshot_dir / self.report_name

    def mark_read(self, relative_file_name: str) -> None:
        self.read_files.add(relative_file_name)

    def was_read(self, relative_file_name: str) -> bool:
        return relative_file_name in self.read_files

    async def unused_files(self) -> list[str]:
        """Snapshot files below the root that were never read."""
        try:
            files = await asyncio.to_thread(list_files, self.snapshot_dir)
        except OSError:
            return []
        return [
            file
            for file in files
            if file not in self.read_files and file != self.report_name
        ]

    async def write_report(self) -> list[str]:
        """Write the unused-snapshot report, once per tracker.

        The report lists one relative path per line. When every file was used
        a stale report is removed instead. Failures are logged, not raised.

        Returns:
            The unused files (empty on repeated calls)
        """
        if self._reported:
            return []
        self._reported = True

        unused = await self.unused_files()
        try:
            if unused:
                await asyncio.to_thread(
                    self.report_path.write_text, "\n".join(unused), "utf-8"
                )
                logger.info(
                    f"{len(unused)} unused snapshot file(s) listed in {self.report_path}"
                )
            else:
                await asyncio.to_thread(self.report_path.unlink, missing_ok=True)
        except OSError as e:
            logger.error(f"Could not update unused snapshot report: {e}")
        return unused
