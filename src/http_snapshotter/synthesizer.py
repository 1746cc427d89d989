"""Rebuild httpx responses from snapshot records."""

import base64
import gzip
import json
import zlib

import brotli
import httpx

from .errors import UnsupportedEncodingError
from .models import SnapshotRecord


def encode_body(record: SnapshotRecord) -> bytes:
    """Plain (uncompressed) response body bytes of a record."""
    body = record.response.body
    if record.response_type == "json":
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode(
            "utf-8"
        )
    if record.response_type == "binary":
        return base64.b64decode(body or "")
    return (body or "").encode("utf-8")


def compress_body(body: bytes, content_encoding: str) -> bytes:
    """Recompress a body captured in decoded form.

    Raises:
        UnsupportedEncodingError: For ``compress`` and ``zstd``
    """
    if "br" in content_encoding:
        return brotli.compress(body)
    if "gzip" in content_encoding:
        return gzip.compress(body, mtime=0)
    if "deflate" in content_encoding:
        return zlib.compress(body)
    if "compress" in content_encoding:
        raise UnsupportedEncodingError("compress")
    if "zstd" in content_encoding:
        raise UnsupportedEncodingError("zstd")
    # Unknown encodings (e.g. identity) pass through untouched
    return body


def synthesize(record: SnapshotRecord) -> httpx.Response:
    """Build the response a client would have received for a snapshot.

    Status, status text and headers are restored verbatim. When the stored
    headers declare a content-encoding the body is recompressed, and for JSON
    bodies ``content-length`` is rewritten, since compact re-serialization can
    change the byte count.
    """
    response = record.response
    content = encode_body(record)

    content_encoding = response.header("content-encoding")
    if content_encoding:
        content = compress_body(content, content_encoding.lower())

    headers = []
    for pair in response.headers:
        name, value = pair[0], pair[1] if len(pair) > 1 else ""
        if name.lower() == "content-length" and record.response_type == "json":
            value = str(len(content))
        headers.append((name, value))

    return httpx.Response(
        status_code=response.status,
        headers=headers,
        content=content,
        extensions={"reason_phrase": response.status_text.encode("ascii", "ignore")},
    )
