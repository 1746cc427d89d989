"""Snapshot session: mode policy and the request/response event handlers."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from .closest_match import ClosestMatch, ClosestMatchFinder, describe_closest_match
from .config import RequestLogLevel, SnapshotMode
from .errors import (
    IgnoreViolationError,
    MissingSnapshotError,
    SnapshotConfigError,
    TestCaseConflictError,
)
from .fingerprint import (
    FingerprintGenerator,
    IgnorePredicate,
    build_identity,
    call_strategy,
    default_fingerprint,
    never_ignore,
    read_body_text,
)
from .models import SnapshotFileIdentity, SnapshotRecord
from .store import SnapshotStore, WriteDedupCache, build_record
from .synthesizer import synthesize
from .usage import UsageTracker

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """State carried from the request event to the response event."""

    request: httpx.Request
    identity: SnapshotFileIdentity | None = None
    replayed: httpx.Response | None = None
    ignored: bool = False


class SnapshotSession:
    """Owns the state of one snapshotting process.

    A session is created once at start-up and drives every intercepted
    request. It is not safe to share between concurrently running tests.
    """

    def __init__(
        self,
        snapshot_dir: str | Path | None,
        mode: SnapshotMode = SnapshotMode.READ,
        log_snapshots: bool = False,
        log_requests: RequestLogLevel = RequestLogLevel.OFF,
    ):
        """Initialize the session.

        Args:
            snapshot_dir: Absolute path of the directory holding snapshots
            mode: Operating mode for the whole session
            log_snapshots: Log every snapshot read and write
            log_requests: Log every observed request
        """
        if not snapshot_dir:
            raise SnapshotConfigError(
                "Please specify full path to a directory for storing/reading snapshots"
            )
        self.snapshot_dir = Path(snapshot_dir).resolve()
        self.mode = SnapshotMode(mode)
        self.log_requests = RequestLogLevel(log_requests)
        self.sub_directory = ""

        self.store = SnapshotStore(self.snapshot_dir, log_snapshots=log_snapshots)
        self.written = WriteDedupCache()
        self.usage = UsageTracker(self.snapshot_dir)
        self.finder = ClosestMatchFinder()

        self._fingerprint_generator: FingerprintGenerator = default_fingerprint
        self._ignore_predicate: IgnorePredicate = never_ignore
        self._finalized = False

    # Test case scoping

    def start_test_case(self, directory_name: str) -> None:
        """Read and write snapshots of the next requests in a sub-directory."""
        if self.sub_directory:
            raise TestCaseConflictError(
                f"Cannot start test case '{directory_name}' as test case "
                f"'{self.sub_directory}' is already running."
            )
        self.sub_directory = directory_name

    def end_test_case(self) -> None:
        """Go back to the root snapshot directory."""
        self.sub_directory = ""

    @property
    def scope_dir(self) -> Path:
        if self.sub_directory:
            return self.snapshot_dir / self.sub_directory
        return self.snapshot_dir

    # Strategies

    def set_fingerprint_generator(self, generator: FingerprintGenerator) -> None:
        """Install a custom fingerprint generator.

        Useful to drop random ids or timestamps from the suffix key, or to
        give the snapshots of one test a distinct prefix.
        """
        self._fingerprint_generator = generator

    def reset_fingerprint_generator(self) -> None:
        self._fingerprint_generator = default_fingerprint

    def set_ignore_predicate(self, predicate: IgnorePredicate) -> None:
        """Install a predicate selecting requests that bypass snapshots."""
        self._ignore_predicate = predicate

    def reset_ignore_predicate(self) -> None:
        self._ignore_predicate = never_ignore

    async def identify(self, request: httpx.Request) -> SnapshotFileIdentity:
        """Compute the snapshot file identity of a request."""
        fingerprint = await call_strategy(self._fingerprint_generator, request)
        return build_identity(self.snapshot_dir, fingerprint, self.sub_directory)

    # Events

    async def on_request(self, request: httpx.Request) -> RequestContext:
        """Handle a request before it is sent.

        Returns:
            Context for ``on_response``; ``replayed`` holds the snapshot
            response when the request must not reach the network

        Raises:
            MissingSnapshotError: Read mode and no snapshot exists
            IgnoreViolationError: Read mode and the request is ignored
        """
        await request.aread()

        if await call_strategy(self._ignore_predicate, request):
            if self.mode is SnapshotMode.READ:
                raise IgnoreViolationError(request.method, str(request.url))
            return RequestContext(request, ignored=True)

        if self.mode not in (SnapshotMode.READ, SnapshotMode.APPEND):
            return RequestContext(request)

        identity = await self.identify(request)
        record = await self._read(request, identity)
        if record is None:
            return RequestContext(request, identity)
        return RequestContext(request, identity, replayed=synthesize(record))

    async def on_response(
        self, context: RequestContext, response: httpx.Response
    ) -> None:
        """Handle a completed exchange; the response body must be read."""
        request = context.request
        writes = self.mode in (SnapshotMode.UPDATE, SnapshotMode.APPEND)
        if self.log_requests is RequestLogLevel.OFF and (context.ignored or not writes):
            return

        identity = context.identity or await self.identify(request)
        if self.log_requests is not RequestLogLevel.OFF:
            await self._log_exchange(request, response, identity)

        if context.ignored or not writes:
            return
        if self.mode is SnapshotMode.UPDATE or (
            self.mode is SnapshotMode.APPEND
            and not self.usage.was_read(identity.relative_file_name)
        ):
            await self.save(request, response, identity)

    async def save(
        self,
        request: httpx.Request,
        response: httpx.Response,
        identity: SnapshotFileIdentity,
    ) -> SnapshotRecord:
        """Persist an exchange, at most once per file for this session."""

        async def write() -> SnapshotRecord:
            record = build_record(request, response, identity.suffix_key)
            return await self.store.write(identity, record)

        return await self.written.write_once(identity.absolute_path, write)

    async def _read(
        self, request: httpx.Request, identity: SnapshotFileIdentity
    ) -> SnapshotRecord | None:
        write = self.written.pending(identity.absolute_path)
        if write is not None:
            record: SnapshotRecord | None = await write
        else:
            record = await self.store.read(identity)
        if record is not None:
            self.usage.mark_read(identity.relative_file_name)
            return record

        if self.mode is SnapshotMode.APPEND:
            logger.debug(
                f"No snapshot {identity.relative_file_name} for "
                f"{request.method} {request.url}, passing through"
            )
            return None

        match = await self._closest_match(identity)
        raise await self._missing_snapshot_error(request, identity, match)

    async def _closest_match(
        self, identity: SnapshotFileIdentity
    ) -> ClosestMatch | None:
        try:
            return await self.finder.find(self.scope_dir, identity)
        except Exception as e:
            logger.debug(f"Closest snapshot lookup failed: {e}")
            return None

    async def _missing_snapshot_error(
        self,
        request: httpx.Request,
        identity: SnapshotFileIdentity,
        match: ClosestMatch | None,
    ) -> MissingSnapshotError:
        summary = {
            "request": {
                "url": str(request.url),
                "method": request.method,
                "headers": dict(request.headers),
                "body": await read_body_text(request),
            },
            "fileName": identity.relative_file_name,
            "fileSuffixKey": identity.suffix_key,
        }
        hint = describe_closest_match(match, identity, self.sub_directory)
        logger.error(
            f"No network snapshot found for request with cache keys: {summary}"
            + (f"\n{hint}" if hint else "")
        )
        message = (
            f"Network request not mocked: {request.method} {request.url}\n"
            f"Expected snapshot file: {identity.relative_file_name}\n"
            f"File suffix key: {identity.suffix_key}"
        )
        if hint:
            message = f"{message}\n{hint}"
        return MissingSnapshotError(message, identity, summary, match)

    async def _log_exchange(
        self,
        request: httpx.Request,
        response: httpx.Response,
        identity: SnapshotFileIdentity,
    ) -> None:
        summary = (
            f"----------\n{request.method} {request.url}\n"
            f"Would use file name: {identity.relative_file_name}"
        )
        if self.log_requests is RequestLogLevel.SUMMARY:
            logger.info(summary)
            return

        details: dict[str, Any] = {
            "request": {
                "url": str(request.url),
                "method": request.method,
                "headers": dict(request.headers),
                "body": await read_body_text(request),
            },
            "response": {
                "status": response.status_code,
                "statusText": response.reason_phrase,
                "headers": dict(response.headers),
                "body": response.text,
            },
            "wouldUseFileSuffixKey": identity.suffix_key,
        }
        logger.info(f"{summary}\n----------\n{details}")

    # Shutdown

    async def finalize(self) -> list[str]:
        """Write the unused-snapshot report (read mode only), once.

        Returns:
            Unused snapshot files, relative to the snapshot directory
        """
        if self._finalized:
            return []
        self._finalized = True
        if self.mode is not SnapshotMode.READ:
            return []
        return await self.usage.write_report()

    async def aclose(self) -> None:
        await self.finalize()

    async def __aenter__(self) -> "SnapshotSession":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
