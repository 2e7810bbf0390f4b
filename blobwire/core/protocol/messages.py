"""
Channel message shapes.

Frames are JSON objects ``{"type": <tag>, "data": {...}}``; variants without
a payload omit ``data``. Class names describe what a message does, the
``type`` literal is the tag the server speaks.
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from ..blobs.models import MediaBlob, coerce_bytes, coerce_uuid


class _Frame(BaseModel):
    model_config = ConfigDict(extra='ignore')


# Client -> Server

class Heartbeat(_Frame):
    """Keepalive probe; answered by ``HeartbeatAck``."""
    type: Literal['Ping'] = 'Ping'


class ListBlobsData(_Frame):
    limit: Optional[int] = Field(default=None, gt=0)
    offset: Optional[int] = Field(default=None, ge=0)


class ListBlobs(_Frame):
    """Request a page of blob summaries."""
    type: Literal['GetMediaBlobs'] = 'GetMediaBlobs'
    data: ListBlobsData = Field(default_factory=ListBlobsData)


class UploadBlobData(_Frame):
    blob: MediaBlob


class UploadBlob(_Frame):
    """Upload a blob, payload included."""
    type: Literal['UploadMediaBlob'] = 'UploadMediaBlob'
    data: UploadBlobData


class BlobIdData(_Frame):
    id: str

    @field_validator('id', mode='before')
    @classmethod
    def validate_id(cls, value):
        return coerce_uuid(value)


class GetBlob(_Frame):
    """Request one blob summary."""
    type: Literal['GetMediaBlob'] = 'GetMediaBlob'
    data: BlobIdData


class GetBlobData(_Frame):
    """Request one blob's payload."""
    type: Literal['GetMediaBlobData'] = 'GetMediaBlobData'
    data: BlobIdData


ClientMessage = Annotated[
    Union[Heartbeat, ListBlobs, UploadBlob, GetBlob, GetBlobData],
    Field(discriminator='type')
]


# Server -> Client

class WelcomeData(_Frame):
    message: str
    user_id: Optional[str] = None
    connection_id: str

    @field_validator('user_id', mode='before')
    @classmethod
    def validate_user_id(cls, value):
        return None if value is None else coerce_uuid(value)


class Welcome(_Frame):
    """Greeting sent once the channel opens."""
    type: Literal['Welcome']
    data: WelcomeData


class HeartbeatAck(_Frame):
    """Answer to ``Heartbeat``."""
    type: Literal['Pong']


class BlobListData(_Frame):
    blobs: List[MediaBlob]
    total_count: int = Field(ge=0)


class BlobList(_Frame):
    """A page of blob summaries."""
    type: Literal['MediaBlobs']
    data: BlobListData


class BlobMetaData(_Frame):
    blob: MediaBlob


class BlobMeta(_Frame):
    """A single blob summary, also sent after a successful channel upload."""
    type: Literal['MediaBlob']
    data: BlobMetaData


class BlobDataPayload(_Frame):
    id: str
    data: bytes
    mime: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)

    @field_validator('id', mode='before')
    @classmethod
    def validate_id(cls, value):
        return coerce_uuid(value)

    @field_validator('data', mode='before')
    @classmethod
    def validate_data(cls, value):
        return coerce_bytes(value)

    @model_validator(mode='after')
    def check_size(self) -> 'BlobDataPayload':
        if self.size is None:
            self.size = len(self.data)
        elif self.size != len(self.data):
            raise ValueError(f"size {self.size} does not match data length {len(self.data)}")
        return self

    @field_serializer('data')
    def serialize_data(self, data: bytes):
        return list(data)


class BlobData(_Frame):
    """A blob's payload."""
    type: Literal['MediaBlobData']
    data: BlobDataPayload


class ErrorData(_Frame):
    message: str
    code: Optional[str] = None


class Error(_Frame):
    """Application error reported by the server."""
    type: Literal['Error']
    data: ErrorData


class PresenceData(_Frame):
    connected: bool
    user_count: int = Field(ge=0)


class PresenceUpdate(_Frame):
    """Connected-user count broadcast."""
    type: Literal['ConnectionStatus']
    data: PresenceData


ServerMessage = Annotated[
    Union[Welcome, HeartbeatAck, BlobList, BlobMeta, BlobData, Error, PresenceUpdate],
    Field(discriminator='type')
]


CLIENT_MESSAGE_TYPES = frozenset({'Ping', 'GetMediaBlobs', 'UploadMediaBlob', 'GetMediaBlob', 'GetMediaBlobData'})
SERVER_MESSAGE_TYPES = frozenset({'Welcome', 'Pong', 'MediaBlobs', 'MediaBlob', 'MediaBlobData', 'Error', 'ConnectionStatus'})


def heartbeat() -> Heartbeat:
    return Heartbeat()


def list_blobs(limit: Optional[int] = None, offset: Optional[int] = None) -> ListBlobs:
    return ListBlobs(data=ListBlobsData(limit=limit, offset=offset))


def upload_blob(blob: MediaBlob) -> UploadBlob:
    return UploadBlob(data=UploadBlobData(blob=blob))


def get_blob(blob_id: str) -> GetBlob:
    return GetBlob(data=BlobIdData(id=blob_id))


def get_blob_data(blob_id: str) -> GetBlobData:
    return GetBlobData(data=BlobIdData(id=blob_id))
