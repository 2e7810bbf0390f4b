"""
Blob previews.

A preview depends on the blob's kind (from its MIME type) and on the state of
its payload in the cache. Loaded images also carry a small JPEG thumbnail.
"""
import io
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from PIL import Image


class PreviewKind(str, Enum):
    IMAGE = 'image'
    VIDEO = 'video'
    AUDIO = 'audio'
    PDF = 'pdf'
    FILE = 'file'

    @classmethod
    def for_mime(cls, mime: Optional[str]) -> 'PreviewKind':
        mime = (mime or '').lower()
        if mime.startswith('image/'):
            return cls.IMAGE
        if mime.startswith('video/'):
            return cls.VIDEO
        if mime.startswith('audio/'):
            return cls.AUDIO
        if mime == 'application/pdf':
            return cls.PDF
        return cls.FILE

    @property
    def loadable(self) -> bool:
        """Media kinds offer a load action before the payload is fetched."""
        return self in (PreviewKind.IMAGE, PreviewKind.VIDEO, PreviewKind.AUDIO)


class PreviewState(str, Enum):
    NOT_LOADED = 'not-loaded'
    LOADING = 'loading'
    LOADED = 'loaded'


@dataclass(frozen=True)
class BlobPreview:
    """
    How a blob should be presented.

    Attributes:
        blob_id: Blob the preview belongs to
        kind: Media kind
        state: Payload state in the cache
        label: Placeholder text (``LOAD IMAGE``, ``Loading...``, ``PDF``, ...)
        uri: Handle URI once loaded
        thumbnail: JPEG thumbnail bytes for loaded images
    """
    blob_id: str
    kind: PreviewKind
    state: PreviewState
    label: str
    mime: Optional[str] = None
    uri: Optional[str] = None
    thumbnail: Optional[bytes] = None


def preview_label(kind: PreviewKind, state: PreviewState) -> str:
    if not kind.loadable:
        return kind.value.upper()
    if state == PreviewState.LOADING:
        return 'Loading...'
    if state == PreviewState.NOT_LOADED:
        return f"LOAD {kind.value.upper()}"
    return kind.value.upper()


class ThumbnailService:
    """
    Generates square-bounded JPEG thumbnails.

    Example:
        >>> service = ThumbnailService()
        >>> thumb = service.generate(png_bytes)
        >>> thumb[:2]
        b'\\xff\\xd8'
    """

    SIZE = 80
    QUALITY = 80
    FORMAT = 'JPEG'

    def __init__(self, size: int = SIZE, quality: int = QUALITY):
        self.size = size
        self.quality = quality

    def generate(self, data: bytes) -> bytes:
        """
        Generate a thumbnail from image bytes.

        Raises:
            OSError: If the bytes are not a readable image
        """
        img = Image.open(io.BytesIO(data))
        img.load()

        # Flatten transparency onto white
        if img.mode in ('RGBA', 'LA', 'P'):
            if img.mode == 'P':
                img = img.convert('RGBA')
            background = Image.new('RGB', img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            img = background
        elif img.mode != 'RGB':
            img = img.convert('RGB')

        img.thumbnail((self.size, self.size), Image.Resampling.LANCZOS)

        output = io.BytesIO()
        img.save(output, format=self.FORMAT, quality=self.quality, optimize=True)
        return output.getvalue()
