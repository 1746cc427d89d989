"""Exceptions raised by the snapshot engine."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .closest_match import ClosestMatch
    from .models import SnapshotFileIdentity


class SnapshotError(Exception):
    """Base class for snapshot engine errors."""


class SnapshotConfigError(SnapshotError):
    """Raised when the engine is configured with unusable settings."""


class TestCaseConflictError(SnapshotError):
    """Raised when a test case is started while another one is active."""

    __test__ = False


class MissingSnapshotError(SnapshotError):
    """No snapshot exists for a request while running in read mode."""

    def __init__(
        self,
        message: str,
        identity: "SnapshotFileIdentity",
        request_summary: dict[str, Any],
        closest_match: "ClosestMatch | None" = None,
    ):
        super().__init__(message)
        self.identity = identity
        self.request_summary = request_summary
        self.closest_match = closest_match


class IgnoreViolationError(SnapshotError):
    """An ignored request tried to reach the network in read mode."""

    def __init__(self, method: str, url: str):
        super().__init__(
            f"Request {method} {url} is ignored for snapshots, "
            "but live network access is not allowed in read mode"
        )
        self.method = method
        self.url = url


class UnsupportedEncodingError(SnapshotError):
    """A snapshot declares a content-encoding that cannot be recompressed."""

    def __init__(self, encoding: str):
        super().__init__(f"{encoding} encoding not supported")
        self.encoding = encoding
