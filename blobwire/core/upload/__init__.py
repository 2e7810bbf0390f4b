"""
Upload module.

Two interchangeable pipelines (channel for small files, bulk HTTP for large
ones) behind a size based router.
"""
from .bulk import BulkUploadPipeline, should_use_bulk
from .channel import ChannelUploadPipeline
from .models import Transport, UploadProgress, UploadStage, UploadStatus, UploadTask
from .pipeline import UploadPipeline
from .protocols import MessageSender, UploadSource
from .router import SmartUploadRouter
from .services import BytesUploadSource, FileValidator, PathUploadSource, as_upload_source

__all__ = [
    # Pipelines
    'UploadPipeline',
    'ChannelUploadPipeline',
    'BulkUploadPipeline',
    'SmartUploadRouter',
    'should_use_bulk',

    # Models
    'Transport',
    'UploadProgress',
    'UploadStage',
    'UploadStatus',
    'UploadTask',

    # Sources
    'UploadSource',
    'MessageSender',
    'BytesUploadSource',
    'PathUploadSource',
    'FileValidator',
    'as_upload_source',
]
