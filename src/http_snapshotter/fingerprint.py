"""Request fingerprinting and snapshot file naming."""

import base64
import hashlib
import inspect
import json
import re
from collections.abc import Awaitable, Callable
from pathlib import Path, PurePosixPath
from typing import Any, Union

import httpx

from .models import Fingerprint, SnapshotFileIdentity
from .slugs import slugify

SUFFIX_KEY_SEPARATOR = "#"
DIGEST_LENGTH = 15

# e.g. dynamodb.eu-west-1.amazonaws.com or 123456789012.ddb.eu-west-1.amazonaws.com
DYNAMODB_HOST_PATTERN = re.compile(r"^(?:dynamodb|\d+\.ddb)\.([^.]+)\.amazonaws\.com$")
DYNAMODB_TARGET_HEADER = "x-amz-target"

FingerprintGenerator = Callable[
    [httpx.Request], Union[Fingerprint, Awaitable[Fingerprint]]
]
IgnorePredicate = Callable[[httpx.Request], Union[bool, Awaitable[bool]]]


async def read_body_text(request: httpx.Request) -> str:
    """Return the request body as text without consuming it for the transport.

    ``httpx.Request.aread`` caches the content and swaps the stream for a
    replayable one, so the body stays available to whoever sends the request.
    """
    try:
        content = await request.aread()
    except httpx.StreamConsumed:
        return ""
    return content.decode("utf-8", errors="replace") if content else ""


def _dynamodb_name_prefix(region: str, request: httpx.Request, body: str) -> str:
    target = request.headers.get(DYNAMODB_TARGET_HEADER, "")
    operation = target.split(".")[-1] if target else ""
    table_name = ""
    try:
        payload = json.loads(body) if body else None
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        table_name = str(payload.get("TableName") or "")
    parts = ["dynamodb", region, slugify(operation), slugify(table_name)]
    return "-".join(part for part in parts if part)


async def default_fingerprint(request: httpx.Request) -> Fingerprint:
    """Fingerprint a request from its method, URL and body.

    The name prefix is ``<method>-<host>-<path>`` slugified, except for
    DynamoDB where every call is a POST to ``/``: there the prefix is built
    from the region, the operation from ``x-amz-target`` and the table name.
    The suffix key is ``METHOD#URL#BODY``.
    """
    url = request.url
    body = await read_body_text(request)

    match = DYNAMODB_HOST_PATTERN.match(url.host or "")
    if match:
        name_prefix = _dynamodb_name_prefix(match.group(1), request, body)
    else:
        path = url.path.removesuffix(".json")
        parts = [request.method.lower(), slugify(url.host), slugify(path)]
        name_prefix = "-".join(part for part in parts if part)

    suffix_key = SUFFIX_KEY_SEPARATOR.join([request.method, str(url), body])
    return Fingerprint(name_prefix=name_prefix, suffix_key=suffix_key)


async def never_ignore(request: httpx.Request) -> bool:
    """Default ignore predicate: every request takes part in snapshotting."""
    return False


async def call_strategy(strategy: Callable[[httpx.Request], Any], request: httpx.Request) -> Any:
    """Call a plain or async strategy and return its result."""
    result = strategy(request)
    if inspect.isawaitable(result):
        result = await result
    return result


def encode_suffix_key(suffix_key: str) -> str:
    """Hash a suffix key into a short, file name safe digest.

    SHA-256 over the UTF-8 bytes, base64url encoded and truncated to
    ``DIGEST_LENGTH`` characters.
    """
    digest = hashlib.sha256(suffix_key.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")[:DIGEST_LENGTH]


def build_identity(
    snapshot_dir: Path, fingerprint: Fingerprint, sub_directory: str = ""
) -> SnapshotFileIdentity:
    """Derive the snapshot file identity of a fingerprint.

    Args:
        snapshot_dir: Root snapshot directory
        fingerprint: Fingerprint of the request
        sub_directory: Optional test case directory relative to the root

    Returns:
        File identity; the name depends on the fingerprint only
    """
    file_name = f"{fingerprint.name_prefix}-{encode_suffix_key(fingerprint.suffix_key)}.json"
    if sub_directory:
        file_name = str(PurePosixPath(sub_directory) / file_name)
    return SnapshotFileIdentity(
        absolute_path=(Path(snapshot_dir) / file_name).resolve(),
        relative_file_name=file_name,
        name_prefix=fingerprint.name_prefix,
        suffix_key=fingerprint.suffix_key,
    )
