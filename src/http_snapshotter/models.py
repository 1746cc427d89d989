"""Pydantic models for fingerprints, file identities and snapshot records."""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RequestBodyType = Literal["json", "text"]
ResponseBodyType = Literal["json", "text", "binary"]


class Fingerprint(BaseModel):
    """Identity of a request for snapshot purposes."""

    model_config = ConfigDict(frozen=True)

    name_prefix: str
    suffix_key: str


class SnapshotFileIdentity(BaseModel):
    """Where the snapshot of a fingerprint lives on disk."""

    model_config = ConfigDict(frozen=True)

    absolute_path: Path
    relative_file_name: str
    name_prefix: str
    suffix_key: str


class RecordedRequest(BaseModel):
    """Request half of a snapshot."""

    method: str
    url: str
    headers: list[list[str]] = Field(default_factory=list)
    body: Any = None


class RecordedResponse(BaseModel):
    """Response half of a snapshot."""

    model_config = ConfigDict(populate_by_name=True)

    status: int
    status_text: str = Field(default="", alias="statusText")
    headers: list[list[str]] = Field(default_factory=list)
    body: Any = None

    def header(self, name: str) -> str | None:
        """Return the first header value matching ``name`` case-insensitively."""
        lowered = name.lower()
        for pair in self.headers:
            if pair and pair[0].lower() == lowered:
                return pair[1] if len(pair) > 1 else ""
        return None


class SnapshotRecord(BaseModel):
    """One persisted request/response exchange.

    Field order matches the on-disk JSON layout, which is kept stable so that
    snapshot files diff cleanly in version control.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    request_type: RequestBodyType = Field(alias="requestType")
    request: RecordedRequest
    response_type: ResponseBodyType = Field(alias="responseType")
    compression: str | None = None
    response: RecordedResponse
    suffix_key: str = Field(alias="fileSuffixKey")

    def to_document(self) -> dict[str, Any]:
        """Return the JSON-ready document written to a snapshot file."""
        document = self.model_dump(by_alias=True, mode="json")
        if document.get("compression") is None:
            document.pop("compression", None)
        return document
