"""Record and replay HTTP interactions for deterministic tests.

Outbound httpx requests are fingerprinted into stable snapshot file names.
Depending on the mode, the exchange is replayed from a JSON snapshot,
recorded to one, or passed through untouched:

    SNAPSHOT=read    (default) replay, fail on missing snapshots
    SNAPSHOT=update  record every exchange, overwriting snapshots
    SNAPSHOT=append  replay existing snapshots, record missing ones
    SNAPSHOT=ignore  neither read nor write snapshots

Snapshot files that were never read during a read-mode run are listed in
``unused-snapshots.log`` in the snapshot directory.
"""

from .closest_match import ClosestMatch, ClosestMatchFinder
from .config import (
    RequestLogLevel,
    SnapshotMode,
    SnapshotSettings,
    load_settings,
)
from .errors import (
    IgnoreViolationError,
    MissingSnapshotError,
    SnapshotConfigError,
    SnapshotError,
    TestCaseConflictError,
    UnsupportedEncodingError,
)
from .fingerprint import build_identity, default_fingerprint, encode_suffix_key
from .http_interceptor import HTTPInterceptor, SnapshotTransport
from .models import Fingerprint, SnapshotFileIdentity, SnapshotRecord
from .session import RequestContext, SnapshotSession
from .store import SnapshotStore, WriteDedupCache
from .synthesizer import synthesize
from .usage import UsageTracker

__version__ = "3.0.0"
__all__ = [
    "ClosestMatch",
    "ClosestMatchFinder",
    "Fingerprint",
    "HTTPInterceptor",
    "IgnoreViolationError",
    "MissingSnapshotError",
    "RequestContext",
    "RequestLogLevel",
    "SnapshotConfigError",
    "SnapshotError",
    "SnapshotFileIdentity",
    "SnapshotMode",
    "SnapshotRecord",
    "SnapshotSession",
    "SnapshotSettings",
    "SnapshotStore",
    "SnapshotTransport",
    "TestCaseConflictError",
    "UnsupportedEncodingError",
    "UsageTracker",
    "WriteDedupCache",
    "build_identity",
    "default_fingerprint",
    "encode_suffix_key",
    "load_settings",
    "synthesize",
]
