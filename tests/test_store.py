import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import patch

import brotli
import httpx
import pytest

from http_snapshotter.fingerprint import build_identity
from http_snapshotter.models import Fingerprint, SnapshotRecord
from http_snapshotter.store import (
    SnapshotStore,
    WriteDedupCache,
    build_record,
    classify_body,
    is_json_content_type,
)
from tests.fixtures.sample_data import XKCD_URL


def make_identity(snapshot_dir: Path, prefix: str = "get-xkcd-com-info-0", sub: str = ""):  # type: ignore[no-untyped-def]
    fingerprint = Fingerprint(name_prefix=prefix, suffix_key=f"GET#{XKCD_URL}#")
    return build_identity(snapshot_dir, fingerprint, sub)


class TestBodyClassification:
    """Test suite for request/response body classification."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "content_type,expected",
        [
            ("application/json", True),
            ("application/json; charset=utf-8", True),
            ("application/x-amz-json-1.0", True),
            ("application/vnd.api+json", True),
            ("application/problem+json; charset=utf-8", True),
            ("text/plain", False),
            ("", False),
        ],
    )
    def test_is_json_content_type(self, content_type: str, expected: bool) -> None:
        """Test standard and vendor JSON media types are recognised."""
        assert is_json_content_type(content_type) is expected

    @pytest.mark.unit
    def test_json_body(self) -> None:
        """Test JSON bodies are parsed."""
        assert classify_body("application/json", b'{"a": [1, 2]}') == ("json", {"a": [1, 2]})

    @pytest.mark.unit
    def test_invalid_json_falls_back_to_text(self) -> None:
        """Test unparsable JSON is stored as text."""
        assert classify_body("application/json", b"{oops") == ("text", "{oops")
        assert classify_body("application/json", b"") == ("text", "")

    @pytest.mark.unit
    def test_text_body(self) -> None:
        """Test non-JSON content types are stored as text even if they parse."""
        assert classify_body("text/plain", b'{"a": 1}') == ("text", '{"a": 1}')

    @pytest.mark.unit
    def test_binary_body(self) -> None:
        """Test non UTF-8 bodies are base64 encoded."""
        assert classify_body("image/png", b"\x89PNG\xff") == ("binary", "iVBOR/8=")


class TestBuildRecord:
    """Test suite for capturing exchanges."""

    @pytest.mark.unit
    def test_build_record(self, xkcd_comic: dict[str, Any], http_mock_helpers: Any) -> None:
        """Test request and response are captured with their body types."""
        request = httpx.Request("GET", XKCD_URL, headers={"accept": "application/json"})
        response = http_mock_helpers.json_response(xkcd_comic, gzipped=True)
        response.read()

        record = build_record(request, response, f"GET#{XKCD_URL}#")

        assert record.request_type == "text"
        assert record.request.body == ""
        assert record.request.method == "GET"
        assert ["accept", "application/json"] in record.request.headers
        assert record.response_type == "json"
        assert record.response.body == xkcd_comic
        assert record.response.status == 200
        assert record.response.status_text == "OK"
        assert record.compression == "gzip"
        assert ["content-encoding", "gzip"] in record.response.headers
        assert record.suffix_key == f"GET#{XKCD_URL}#"

    @pytest.mark.unit
    def test_build_record_json_request(self) -> None:
        """Test JSON request bodies are stored parsed."""
        request = httpx.Request("POST", "https://api.example.com/items", json={"name": "x"})
        response = httpx.Response(201, text="created")

        record = build_record(request, response, "key")

        assert record.request_type == "json"
        assert record.request.body == {"name": "x"}
        assert record.response_type == "text"
        assert record.response.body == "created"
        assert record.compression is None


class TestSnapshotStore:
    """Test suite for SnapshotStore."""

    @pytest.fixture
    def record(self, snapshot_document: dict[str, Any]) -> SnapshotRecord:
        return SnapshotRecord.model_validate(snapshot_document)

    @pytest.mark.unit
    async def test_write_then_read(self, snapshot_dir: Path, record: SnapshotRecord) -> None:
        """Test a written record reads back equal."""
        store = SnapshotStore(snapshot_dir)
        identity = make_identity(snapshot_dir)

        await store.write(identity, record)

        assert await SnapshotStore(snapshot_dir).read(identity) == record

    @pytest.mark.unit
    async def test_written_file_layout(
        self, snapshot_dir: Path, record: SnapshotRecord, snapshot_document: dict[str, Any]
    ) -> None:
        """Test files are indented JSON with a stable key order."""
        identity = make_identity(snapshot_dir)

        await SnapshotStore(snapshot_dir).write(identity, record)

        text = identity.absolute_path.read_text(encoding="utf-8")
        assert text.startswith('{\n  "requestType": "text",\n  "request": {')
        document = json.loads(text)
        assert list(document) == [
            "requestType",
            "request",
            "responseType",
            "response",
            "fileSuffixKey",
        ]
        assert list(document["response"]) == ["status", "statusText", "headers", "body"]
        assert document == snapshot_document

    @pytest.mark.unit
    async def test_compression_is_written_when_present(self, snapshot_dir: Path) -> None:
        """Test the compression field sits between responseType and response."""
        request = httpx.Request("GET", XKCD_URL)
        response = httpx.Response(
            200,
            headers={"content-type": "text/plain", "content-encoding": "br"},
            content=brotli.compress(b"hi"),
        )
        identity = make_identity(snapshot_dir)

        await SnapshotStore(snapshot_dir).write(identity, build_record(request, response, "k"))

        document = json.loads(identity.absolute_path.read_text(encoding="utf-8"))
        assert list(document)[2:4] == ["responseType", "compression"]
        assert document["compression"] == "br"

    @pytest.mark.unit
    async def test_write_creates_directories(self, tmp_path: Path, record: SnapshotRecord) -> None:
        """Test parent directories are created on demand."""
        root = tmp_path / "missing" / "root"
        identity = make_identity(root, sub="case-a")

        await SnapshotStore(root).write(identity, record)

        assert identity.absolute_path.exists()
        assert identity.absolute_path.parent.name == "case-a"

    @pytest.mark.unit
    async def test_directory_creation_is_memoized(
        self, snapshot_dir: Path, record: SnapshotRecord
    ) -> None:
        """Test repeated writes to one directory create it only once."""
        store = SnapshotStore(snapshot_dir)

        with patch.object(Path, "mkdir", autospec=True) as mkdir:
            await store.write(make_identity(snapshot_dir, prefix="a"), record)
            await store.write(make_identity(snapshot_dir, prefix="b"), record)

        assert mkdir.call_count == 1

    @pytest.mark.unit
    async def test_missing_file_is_a_miss(self, snapshot_dir: Path) -> None:
        """Test a missing file returns None instead of raising."""
        assert await SnapshotStore(snapshot_dir).read(make_identity(snapshot_dir)) is None

    @pytest.mark.unit
    async def test_corrupted_file_raises(self, snapshot_dir: Path) -> None:
        """Test parse errors propagate."""
        identity = make_identity(snapshot_dir)
        identity.absolute_path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ValueError):
            await SnapshotStore(snapshot_dir).read(identity)

    @pytest.mark.unit
    async def test_reads_are_cached(
        self,
        snapshot_dir: Path,
        snapshot_document: dict[str, Any],
        write_snapshot: Callable[[str, dict[str, Any]], Path],
    ) -> None:
        """Test a file is only read from disk once per store."""
        identity = make_identity(snapshot_dir)
        write_snapshot(identity.relative_file_name, snapshot_document)
        store = SnapshotStore(snapshot_dir)

        first = await store.read(identity)
        identity.absolute_path.unlink()
        second = await store.read(identity)

        assert first is not None
        assert second is first

    @pytest.mark.unit
    async def test_logging_level_follows_toggle(
        self, snapshot_dir: Path, record: SnapshotRecord, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test reads and writes are logged at INFO when enabled."""
        caplog.set_level("INFO", logger="http_snapshotter.store")
        identity = make_identity(snapshot_dir)

        await SnapshotStore(snapshot_dir, log_snapshots=True).write(identity, record)

        assert f"Writing: {identity.relative_file_name}" in caplog.text


class TestWriteDedupCache:
    """Test suite for WriteDedupCache."""

    @pytest.mark.unit
    async def test_concurrent_writes_run_once(self, snapshot_document: dict[str, Any]) -> None:
        """Test N concurrent writers for one path share a single write."""
        cache = WriteDedupCache()
        record = SnapshotRecord.model_validate(snapshot_document)
        calls = 0

        async def write() -> SnapshotRecord:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return record

        results = await asyncio.gather(
            *[cache.write_once(Path("/tmp/a.json"), write) for _ in range(5)]
        )

        assert calls == 1
        assert all(result is record for result in results)
        assert Path("/tmp/a.json") in cache
        assert len(cache) == 1

    @pytest.mark.unit
    async def test_later_writes_reuse_result(self, snapshot_document: dict[str, Any]) -> None:
        """Test writes after completion reuse the first result."""
        cache = WriteDedupCache()
        first = SnapshotRecord.model_validate(snapshot_document)
        second = first.model_copy(update={"suffix_key": "other"})

        async def write_first() -> SnapshotRecord:
            return first

        async def write_second() -> SnapshotRecord:
            return second

        assert await cache.write_once(Path("/tmp/a.json"), write_first) is first
        assert await cache.write_once(Path("/tmp/a.json"), write_second) is first
        assert await cache.write_once(Path("/tmp/b.json"), write_second) is second
