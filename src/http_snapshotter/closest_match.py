"""Closest-match lookup used to explain snapshot misses."""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from .models import SnapshotFileIdentity
from .store import load_record

logger = logging.getLogger(__name__)

MAX_DIFF_RATIO = 0.5

RED_BG = "\x1b[41m"
GREEN_BG = "\x1b[42m"
WHITE = "\x1b[37m"
RESET = "\x1b[0m"


@dataclass(frozen=True)
class DiffPart:
    value: str
    added: bool = False
    removed: bool = False


@dataclass(frozen=True)
class ClosestMatch:
    """Best existing snapshot for a missed fingerprint."""

    file: str
    suffix_key: str
    diff_ratio: float
    differences: list[DiffPart]

    def same_suffix_key(self, suffix_key: str) -> bool:
        return self.suffix_key == suffix_key


def _previous_diagonal(v: list[int], base: int, k: int, n: int, m: int) -> int | None:
    """Diagonal the furthest path on ``k`` comes from, None if unreachable.

    ``v[base + k]`` holds the furthest x reached on diagonal k, -1 when no
    path reaches it.
    """
    deletion = v[base + k - 1]
    insertion = v[base + k + 1]
    can_delete = 0 <= deletion < n
    can_insert = insertion >= 0 and insertion - (k + 1) < m
    if can_insert and (not can_delete or deletion < insertion):
        return k + 1
    if can_delete:
        return k - 1
    return None


def _shortest_edit(old: str, new: str, max_edits: int) -> list[DiffPart] | None:
    """Myers' O(ND) diff, None when more than ``max_edits`` edits are needed."""
    n, m = len(old), len(new)
    limit = min(max_edits, n + m)
    offset = limit + 1
    v = [-1] * (2 * limit + 3)
    v[offset + 1] = 0
    trace: list[list[int]] = []

    for d in range(limit + 1):
        trace.append(v[offset - d - 1 : offset + d + 2])
        for k in range(-d, d + 1, 2):
            prev_k = _previous_diagonal(v, offset, k, n, m)
            if prev_k is None:
                v[offset + k] = -1
                continue
            x = v[offset + prev_k] + (1 if prev_k == k - 1 else 0)
            y = x - k
            while x < n and y < m and old[x] == new[y]:
                x += 1
                y += 1
            v[offset + k] = x
            if x == n and y == m:
                return _backtrack(old, new, trace)
    return None


def _backtrack(old: str, new: str, trace: list[list[int]]) -> list[DiffPart]:
    # trace[d] is the state before step d, diagonal k stored at k + d + 1
    n, m = len(old), len(new)
    x, y = n, m
    steps: list[tuple[str, str]] = []
    for d in range(len(trace) - 1, 0, -1):
        k = x - y
        prev_k = _previous_diagonal(trace[d], d + 1, k, n, m)
        if prev_k is None:
            raise RuntimeError(f"Broken edit path at step {d}")
        prev_x = trace[d][d + 1 + prev_k]
        prev_y = prev_x - prev_k
        mid_x = prev_x if prev_k == k + 1 else prev_x + 1
        while x > mid_x:
            steps.append(("equal", old[x - 1]))
            x -= 1
            y -= 1
        if prev_k == k + 1:
            steps.append(("added", new[y - 1]))
        else:
            steps.append(("removed", old[x - 1]))
        x, y = prev_x, prev_y
    while x > 0 and y > 0:
        steps.append(("equal", old[x - 1]))
        x -= 1
        y -= 1

    parts: list[DiffPart] = []
    for kind, char in reversed(steps):
        if parts and _kind_of(parts[-1]) == kind:
            last = parts.pop()
            parts.append(DiffPart(last.value + char, last.added, last.removed))
        else:
            parts.append(DiffPart(char, added=kind == "added", removed=kind == "removed"))
    return parts


def _kind_of(part: DiffPart) -> str:
    if part.added:
        return "added"
    if part.removed:
        return "removed"
    return "equal"


def diff_chars(old: str, new: str) -> list[DiffPart]:
    """Minimal character-level edit script turning ``old`` into ``new``."""
    return _shortest_edit(old, new, len(old) + len(new)) or []


def bounded_diff_chars(old: str, new: str, max_edits: int) -> list[DiffPart] | None:
    """Like ``diff_chars``, giving up once more than ``max_edits`` characters
    would have to be inserted or removed."""
    return _shortest_edit(old, new, max_edits)


def diff_ratio(differences: list[DiffPart]) -> float:
    """Share of changed characters: (inserted + removed) / all compared."""
    total = sum(len(part.value) for part in differences)
    if total == 0:
        return 0.0
    changed = sum(
        len(part.value) for part in differences if part.added or part.removed
    )
    return changed / total


def render_diff(differences: list[DiffPart]) -> str:
    """Render a diff with added text on green and removed text on red."""
    output = []
    for part in differences:
        if part.added:
            output.append(f"{GREEN_BG}{WHITE}{part.value}{RESET}")
        elif part.removed:
            output.append(f"{RED_BG}{WHITE}{part.value}{RESET}")
        else:
            output.append(part.value)
    return "".join(output)


def list_files(directory: Path) -> list[str]:
    """List files below ``directory`` recursively as relative posix paths."""
    files = []
    for current, _dirs, names in os.walk(directory):
        for name in names:
            relative = Path(current, name).relative_to(directory)
            files.append(relative.as_posix())
    return sorted(files)


class ClosestMatchFinder:
    """Searches existing snapshot files for a near-identical suffix key.

    Directory listings and parsed candidate suffix keys are cached, since
    the finder only runs in read mode where files do not change.
    """

    def __init__(self) -> None:
        self._listings: dict[Path, list[str]] = {}
        self._suffix_keys: dict[Path, str] = {}

    async def list_snapshot_files(self, directory: Path) -> list[str]:
        if directory not in self._listings:
            try:
                files = await asyncio.to_thread(list_files, directory)
            except OSError:
                return []
            self._listings[directory] = files
        return self._listings[directory]

    async def _suffix_key_of(self, path: Path) -> str | None:
        if path not in self._suffix_keys:
            try:
                record = await load_record(path)
            except (OSError, ValueError) as e:
                logger.debug(f"Skipping unreadable snapshot candidate {path}: {e}")
                return None
            self._suffix_keys[path] = record.suffix_key
        return self._suffix_keys[path]

    async def find(
        self, scope_dir: Path, identity: SnapshotFileIdentity
    ) -> ClosestMatch | None:
        """Find the closest snapshot to a missed identity.

        Args:
            scope_dir: Directory searched, the root or the active test case
            identity: Identity that had no snapshot file

        Returns:
            The candidate with the smallest diff ratio below ``MAX_DIFF_RATIO``,
            or None
        """
        prefix = f"{identity.name_prefix}-"
        candidates = [
            file
            for file in await self.list_snapshot_files(scope_dir)
            if PurePosixPath(file).name.startswith(prefix)
        ]

        best: ClosestMatch | None = None
        for file in candidates:
            suffix_key = await self._suffix_key_of(scope_dir / file)
            if suffix_key is None:
                continue
            # a ratio below 0.5 needs fewer edits than a third of both lengths
            max_edits = (len(suffix_key) + len(identity.suffix_key)) // 3
            differences = bounded_diff_chars(suffix_key, identity.suffix_key, max_edits)
            if differences is None:
                continue
            ratio = diff_ratio(differences)
            if ratio < MAX_DIFF_RATIO and (best is None or ratio < best.diff_ratio):
                best = ClosestMatch(
                    file=file,
                    suffix_key=suffix_key,
                    diff_ratio=ratio,
                    differences=differences,
                )
        return best


def describe_closest_match(
    match: ClosestMatch | None, identity: SnapshotFileIdentity, sub_directory: str = ""
) -> str:
    """Explain a closest match for a missing-snapshot error message."""
    if match is None:
        return ""
    found = str(PurePosixPath(sub_directory) / match.file) if sub_directory else match.file
    if match.same_suffix_key(identity.suffix_key):
        return "\n".join(
            [
                f"Found a snapshot file with same file suffix key: {found}. "
                "Was the snapshot file manually renamed?",
                "Below is the diff between the current snapshot's file name versus "
                "what should be the new snapshot file name:",
                render_diff(diff_chars(identity.relative_file_name, found)),
            ]
        )
    return "\n".join(
        [
            "Maybe the request has had a minor change from a previous snapshot? "
            f"Closest snapshot file in similarity: {found}",
            "Below is the diff between the two suffix keys used for computing "
            "the hash of the file name:",
            render_diff(match.differences),
        ]
    )
