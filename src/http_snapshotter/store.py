"""File-backed persistence of snapshot records."""

import asyncio
import base64
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import aiofiles  # type: ignore
import httpx

from .models import (
    RecordedRequest,
    RecordedResponse,
    SnapshotFileIdentity,
    SnapshotRecord,
)

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPES = ("application/json", "application/x-amz-json-")


def is_json_content_type(content_type: str) -> bool:
    """Return True for standard, vendor (``+json``) and AWS JSON media types."""
    lowered = content_type.lower()
    media_type = lowered.split(";", 1)[0].strip()
    return media_type.endswith("+json") or any(
        marker in lowered for marker in JSON_CONTENT_TYPES
    )


def classify_body(content_type: str, content: bytes) -> tuple[str, Any]:
    """Decide how a body is stored.

    JSON content types are parsed and stored as JSON; anything that fails to
    parse, or any other content type, is stored as text. Bodies that are not
    valid UTF-8 are stored base64 encoded as ``binary``.

    Returns:
        Tuple of (body type, stored body)
    """
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError:
        return "binary", base64.b64encode(content).decode("ascii")

    if is_json_content_type(content_type):
        try:
            return "json", json.loads(text)
        except ValueError:
            pass
    return "text", text


def build_record(
    request: httpx.Request, response: httpx.Response, suffix_key: str
) -> SnapshotRecord:
    """Capture an exchange as a snapshot record.

    Both the request and the response must have been read already. The
    response body is captured decoded, the way a client sees it.
    """
    request_type, request_body = classify_body(
        request.headers.get("content-type", ""), request.content
    )
    if request_type == "binary":
        request_type = "text"
        request_body = request.content.decode("utf-8", errors="replace")

    response_type, response_body = classify_body(
        response.headers.get("content-type", ""), response.content
    )

    return SnapshotRecord(
        request_type=request_type,
        request=RecordedRequest(
            method=request.method,
            url=str(request.url),
            headers=[[name, value] for name, value in request.headers.multi_items()],
            body=request_body,
        ),
        response_type=response_type,
        compression=response.headers.get("content-encoding"),
        response=RecordedResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=[[name, value] for name, value in response.headers.multi_items()],
            body=response_body,
        ),
        suffix_key=suffix_key,
    )


async def load_record(path: Path) -> SnapshotRecord:
    """Read and validate a snapshot file."""
    async with aiofiles.open(path, encoding="utf-8") as f:
        data = await f.read()
    return SnapshotRecord.model_validate(json.loads(data))


def dump_record(record: SnapshotRecord) -> str:
    """Serialize a record as indented JSON with a stable field order."""
    return json.dumps(record.to_document(), indent=2, ensure_ascii=False)


class SnapshotStore:
    """Reads and writes snapshot files below a root directory.

    Successful reads are cached for the lifetime of the store.
    """

    def __init__(self, snapshot_dir: Path, log_snapshots: bool = False):
        """Initialize the store.

        Args:
            snapshot_dir: Root directory for snapshot files
            log_snapshots: Log every read and write at INFO level
        """
        self.snapshot_dir = Path(snapshot_dir)
        self.log_snapshots = log_snapshots
        self._cache: dict[Path, SnapshotRecord] = {}
        self._existing_dirs: set[Path] = set()

    def _log(self, message: str) -> None:
        logger.log(logging.INFO if self.log_snapshots else logging.DEBUG, message)

    async def read(self, identity: SnapshotFileIdentity) -> SnapshotRecord | None:
        """Load the record of an identity.

        Returns:
            The record, or None when no snapshot file exists

        Raises:
            OSError: Any I/O failure other than a missing file
            ValueError: The file is not a valid snapshot document
        """
        path = identity.absolute_path
        cached = self._cache.get(path)
        if cached is not None:
            return cached

        self._log(f"Reading: {identity.relative_file_name}")
        try:
            record = await load_record(path)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Error reading network snapshot file: {e}")
            raise

        self._cache[path] = record
        return record

    async def _ensure_directory(self, directory: Path) -> None:
        if directory in self._existing_dirs:
            return
        self._existing_dirs.add(directory)
        await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)

    async def write(
        self, identity: SnapshotFileIdentity, record: SnapshotRecord
    ) -> SnapshotRecord:
        """Write a record to the file of an identity, creating directories."""
        self._log(f"Writing: {identity.relative_file_name}")
        path = identity.absolute_path
        await self._ensure_directory(path.parent)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(dump_record(record))
        return record


class WriteDedupCache:
    """Ensures at most one physical write per snapshot file per process.

    The first caller for a path runs the write; every later or concurrent
    caller for the same path awaits the same task and gets its result.
    """

    def __init__(self) -> None:
        self._writes: dict[Path, asyncio.Task[SnapshotRecord]] = {}

    def __contains__(self, path: Path) -> bool:
        return path in self._writes

    def __len__(self) -> int:
        return len(self._writes)

    def pending(self, path: Path) -> "asyncio.Task[SnapshotRecord] | None":
        """The write task of a path, finished or not, if one was started."""
        return self._writes.get(path)

    async def write_once(
        self, path: Path, write: Callable[[], Awaitable[SnapshotRecord]]
    ) -> SnapshotRecord:
        task = self._writes.get(path)
        if task is None:
            task = asyncio.ensure_future(write())
            self._writes[path] = task
        return await task
