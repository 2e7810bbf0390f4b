"""Bulk endpoint request and response schemas."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..blobs.hashing import is_sha256_hex
from ..blobs.models import coerce_uuid


class UploadRequest(BaseModel):
    """JSON ``metadata`` part of a bulk upload."""
    filename: str = Field(min_length=1)
    mime_type: Optional[str] = None
    sha256: str = Field(min_length=64, max_length=64)
    size: int = Field(gt=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('sha256')
    @classmethod
    def validate_sha256(cls, value: str) -> str:
        if not is_sha256_hex(value):
            raise ValueError("sha256 must be 64 lowercase hexadecimal characters")
        return value


class UploadResponse(BaseModel):
    """Body of a ``201`` upload response."""
    model_config = ConfigDict(extra='ignore')

    id: str
    local_path: Optional[str] = None
    sha256: str
    size: int = Field(gt=0)
    mime_type: Optional[str] = None
    created_at: datetime

    @field_validator('id', mode='before')
    @classmethod
    def validate_id(cls, value):
        return coerce_uuid(value)


class UploadInfo(BaseModel):
    """Stored metadata of a bulk upload."""
    model_config = ConfigDict(extra='ignore')

    id: str
    local_path: Optional[str] = None
    sha256: str
    size: Optional[int] = None
    mime: Optional[str] = None
    source_client_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @field_validator('id', mode='before')
    @classmethod
    def validate_id(cls, value):
        return coerce_uuid(value)

    @field_validator('metadata', mode='before')
    @classmethod
    def default_metadata(cls, value):
        return {} if value is None else value


class UploadList(BaseModel):
    """A page of bulk uploads; the collection key is ``uploads`` or ``items``."""
    model_config = ConfigDict(extra='ignore')

    uploads: List[UploadInfo] = Field(validation_alias=AliasChoices('uploads', 'items'))
    total_count: int = Field(ge=0)
    limit: Optional[int] = None
    offset: int = Field(default=0, ge=0)
