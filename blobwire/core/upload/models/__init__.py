"""Upload models."""
from .upload_models import (
    UploadStatus,
    UploadStage,
    Transport,
    UploadProgress,
    UploadTask,
)

__all__ = [
    'UploadStatus',
    'UploadStage',
    'Transport',
    'UploadProgress',
    'UploadTask',
]
