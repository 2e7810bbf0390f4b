"""Channel message protocol."""
from .messages import (
    Heartbeat,
    ListBlobs,
    UploadBlob,
    GetBlob,
    GetBlobData,
    Welcome,
    HeartbeatAck,
    BlobList,
    BlobMeta,
    BlobData,
    BlobDataPayload,
    Error,
    PresenceUpdate,
    ClientMessage,
    ServerMessage,
    heartbeat,
    list_blobs,
    upload_blob,
    get_blob,
    get_blob_data,
)
from .parser import ParseResult, parse_server_frame, parse_client_frame, encode

__all__ = [
    'Heartbeat',
    'ListBlobs',
    'UploadBlob',
    'GetBlob',
    'GetBlobData',
    'Welcome',
    'HeartbeatAck',
    'BlobList',
    'BlobMeta',
    'BlobData',
    'BlobDataPayload',
    'Error',
    'PresenceUpdate',
    'ClientMessage',
    'ServerMessage',
    'heartbeat',
    'list_blobs',
    'upload_blob',
    'get_blob',
    'get_blob_data',
    'ParseResult',
    'parse_server_frame',
    'parse_client_frame',
    'encode',
]
