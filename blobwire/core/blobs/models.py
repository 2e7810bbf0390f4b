"""
Media blob model.

A blob is a unit of binary content plus metadata. On the wire ``data`` is a
JSON array of byte values and timestamps are RFC 3339 strings, matching the
server's serialization.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from .hashing import sha256_hex, is_sha256_hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_blob_id() -> str:
    """Generate a fresh blob id."""
    return str(uuid.uuid4())


def coerce_bytes(value: Any) -> Any:
    """Accept bytes or a list of byte values (0-255)."""
    if value is None or isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, list):
        if not all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in value):
            raise ValueError("data must be a list of byte values (0-255)")
        return bytes(value)
    raise ValueError("data must be bytes or a list of byte values")


def coerce_uuid(value: Any) -> str:
    if isinstance(value, uuid.UUID):
        return str(value)
    if not isinstance(value, str):
        raise ValueError("id must be a UUID string")
    return str(uuid.UUID(value))


class MediaBlob(BaseModel):
    """
    Binary content plus metadata, identified by id.

    When ``data`` is present, ``size`` equals ``len(data)`` and ``sha256``
    equals its digest; a missing ``size`` is filled in from ``data``.

    Attributes:
        id: UUID string generated by the uploader
        data: Raw bytes, usually absent once persisted server side
        sha256: Lowercase hex digest
        size: Byte length
        mime: MIME type
        source_client_id: Client that produced the blob
        local_path: Original filename or storage path
        metadata: Free-form key/value map
    """
    model_config = ConfigDict(extra='ignore')

    id: str
    data: Optional[bytes] = None
    sha256: str
    size: Optional[int] = Field(default=None, ge=0)
    mime: Optional[str] = None
    source_client_id: Optional[str] = None
    local_path: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator('id', mode='before')
    @classmethod
    def validate_id(cls, value: Any) -> str:
        return coerce_uuid(value)

    @field_validator('data', mode='before')
    @classmethod
    def validate_data(cls, value: Any) -> Any:
        return coerce_bytes(value)

    @field_validator('sha256', mode='before')
    @classmethod
    def validate_sha256(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("sha256 must be a string")
        value = value.lower()
        if not is_sha256_hex(value):
            raise ValueError("sha256 must be 64 hexadecimal characters")
        return value

    @field_validator('metadata', mode='before')
    @classmethod
    def default_metadata(cls, value: Any) -> Any:
        return {} if value is None else value

    @model_validator(mode='after')
    def check_integrity(self) -> 'MediaBlob':
        if self.data is not None:
            if self.size is None:
                self.size = len(self.data)
            elif self.size != len(self.data):
                raise ValueError(f"size {self.size} does not match data length {len(self.data)}")
            if sha256_hex(self.data) != self.sha256:
                raise ValueError("sha256 does not match data")
        return self

    @field_serializer('data')
    def serialize_data(self, data: Optional[bytes]):
        return list(data) if data is not None else None

    @classmethod
    def from_bytes(cls, data: bytes, **fields) -> 'MediaBlob':
        """
        Build a blob from raw bytes, computing digest and size.

        Example:
            >>> blob = MediaBlob.from_bytes(b"hello", mime="text/plain")
            >>> blob.size
            5
        """
        fields.setdefault('id', new_blob_id())
        return cls(data=data, sha256=sha256_hex(data), size=len(data), **fields)

    def without_data(self) -> 'MediaBlob':
        """Copy of this blob with the payload dropped."""
        return self.model_copy(update={'data': None})

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict in the server's format."""
        return self.model_dump(mode='json', exclude_none=True)
