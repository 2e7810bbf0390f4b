"""Tests for blob cache, handles and previews."""
import pytest

from blobwire.core.blobs import MediaBlob
from blobwire.core.cache import (
    BlobCache,
    MemoryResourceHandle,
    PreviewKind,
    PreviewState,
    TempFileHandleFactory,
    ThumbnailService,
    format_file_size,
)
from blobwire.core.protocol import BlobDataPayload


def payload(blob_id, data=b'hello world', mime=None):
    return BlobDataPayload(id=blob_id, data=data, mime=mime)


def record(cache, event):
    events = []
    cache.on(event, events.append)
    return events


class TestFormatFileSize:
    """Test suite for format_file_size."""

    @pytest.mark.parametrize('size,expected', [
        (None, 'Unknown size'),
        (0, 'Unknown size'),
        (512, '512.0 B'),
        (1536, '1.5 KB'),
        (5 * 1024 * 1024, '5.0 MB'),
        (3 * 1024 ** 3, '3.0 GB'),
    ])
    def test_format(self, size, expected):
        """Test size formatting."""
        assert format_file_size(size) == expected


class TestSummaries:
    """Test suite for the summary list."""

    def test_update_blobs(self, sample_blob):
        """Test replacing the list."""
        cache = BlobCache()
        updated = record(cache, 'blobs-updated')

        cache.update_blobs([sample_blob])

        assert cache.get_blobs() == [sample_blob]
        assert updated[0]['count'] == 1

    def test_upsert_new_blob_goes_first(self, sample_blob):
        """Test new summaries are prepended."""
        cache = BlobCache()
        cache.update_blobs([sample_blob])
        other = MediaBlob.from_bytes(b'other').without_data()

        assert cache.upsert_blob(other) is True
        assert cache.get_blobs()[0].id == other.id

    def test_upsert_existing_replaces(self, sample_blob):
        """Test known ids are replaced in place."""
        cache = BlobCache()
        cache.update_blobs([sample_blob])
        changed = sample_blob.model_copy(update={'mime': 'text/markdown'})
        events = record(cache, 'blob-updated')

        assert cache.upsert_blob(changed) is False
        assert cache.get_blob(sample_blob.id).mime == 'text/markdown'
        assert len(cache.get_blobs()) == 1
        assert events[0]['created'] is False


class TestPayloads:
    """Test suite for the request/fulfil cycle."""

    def test_request_emits_once(self, sample_blob):
        """Test a payload is requested only once while loading."""
        cache = BlobCache()
        requested = record(cache, 'blob-data-requested')

        assert cache.request_blob_data(sample_blob.id) is True
        assert cache.request_blob_data(sample_blob.id) is False

        assert requested == [{'id': sample_blob.id}]
        assert cache.is_loading(sample_blob.id)

    def test_cache_blob_data(self, sample_blob):
        """Test storing a payload creates a handle."""
        cache = BlobCache()
        cache.update_blobs([sample_blob])
        cache.request_blob_data(sample_blob.id)
        cached = record(cache, 'blob-data-cached')

        handle = cache.cache_blob_data(payload(sample_blob.id))

        assert cache.is_cached(sample_blob.id)
        assert not cache.is_loading(sample_blob.id)
        assert cache.get_data(sample_blob.id) == b'hello world'
        assert handle.mime == 'text/plain'
        assert handle.uri.startswith('blob:blobwire/')
        assert cached[0]['uri'] == handle.uri
        assert cache.request_blob_data(sample_blob.id) is False

    def test_recache_releases_previous_handle(self, sample_blob):
        """Test a second payload replaces and releases the first handle."""
        cache = BlobCache()
        first = cache.cache_blob_data(payload(sample_blob.id))
        second = cache.cache_blob_data(payload(sample_blob.id, b'again'))

        assert first.released
        assert not second.released
        assert cache.get_data(sample_blob.id) == b'again'

    def test_abandon_request(self, sample_blob):
        """Test a failed fetch can be retried."""
        cache = BlobCache()
        cache.request_blob_data(sample_blob.id)

        cache.abandon_request(sample_blob.id)

        assert cache.request_blob_data(sample_blob.id) is True

    def test_clear_cache_releases_handles(self, sample_blob):
        """Test clearing releases every handle."""
        cache = BlobCache()
        handle = cache.cache_blob_data(payload(sample_blob.id))
        cleared = record(cache, 'cache-cleared')

        assert cache.clear_cache() == 1

        assert handle.released
        assert cache.cache_stats() == {'cached_count': 0, 'loading_count': 0, 'total_blobs': 0}
        assert cleared[0]['released'] == 1

    def test_released_handle_cannot_be_read(self):
        """Test reading after release."""
        handle = MemoryResourceHandle('x', b'data')
        handle.release()
        handle.release()

        with pytest.raises(RuntimeError):
            handle.read()

    def test_temp_file_handles(self, sample_blob, tmp_path):
        """Test temp file backed handles are removed on release."""
        factory = TempFileHandleFactory(tmp_path)
        cache = BlobCache(handle_factory=factory)

        handle = cache.cache_blob_data(payload(sample_blob.id))
        assert handle.path.read_bytes() == b'hello world'
        assert handle.uri.startswith('file://')

        cache.destroy()

        assert handle.released
        assert not handle.path.exists()
        assert factory.directory is None


class TestDownload:
    """Test suite for download_blob."""

    @pytest.mark.asyncio
    async def test_download_to_directory(self, sample_blob, tmp_path):
        """Test saving under the original name."""
        cache = BlobCache()
        cache.update_blobs([sample_blob])
        cache.cache_blob_data(payload(sample_blob.id))

        assert await cache.download_blob(sample_blob.id, tmp_path) is True

        assert (tmp_path / 'hello.txt').read_bytes() == b'hello world'

    @pytest.mark.asyncio
    async def test_download_requests_missing_payload(self, sample_blob, tmp_path):
        """Test an uncached payload is requested instead."""
        cache = BlobCache()
        requested = record(cache, 'blob-data-requested')

        assert await cache.download_blob(sample_blob.id, tmp_path) is False
        assert requested == [{'id': sample_blob.id}]


class TestPreview:
    """Test suite for previews and display info."""

    @pytest.mark.parametrize('mime,kind', [
        ('image/png', PreviewKind.IMAGE),
        ('video/mp4', PreviewKind.VIDEO),
        ('audio/mpeg', PreviewKind.AUDIO),
        ('application/pdf', PreviewKind.PDF),
        (None, PreviewKind.FILE),
    ])
    def test_kind_for_mime(self, mime, kind):
        """Test kinds by MIME type."""
        assert PreviewKind.for_mime(mime) == kind

    def test_labels_follow_state(self, png_bytes):
        """Test load, loading and loaded states."""
        cache = BlobCache()
        blob = MediaBlob.from_bytes(png_bytes, mime='image/png').without_data()
        cache.update_blobs([blob])

        assert cache.preview(blob).label == 'LOAD IMAGE'
        cache.request_blob_data(blob.id)
        assert cache.preview(blob).label == 'Loading...'
        cache.cache_blob_data(payload(blob.id, png_bytes))

        preview = cache.preview(blob)
        assert preview.state == PreviewState.LOADED
        assert preview.thumbnail[:2] == b'\xff\xd8'

    def test_pdf_label(self):
        """Test non-media kinds have a static label."""
        blob = MediaBlob.from_bytes(b'%PDF', mime='application/pdf').without_data()

        assert BlobCache().preview(blob).label == 'PDF'

    def test_broken_image_has_no_thumbnail(self):
        """Test undecodable image bytes."""
        cache = BlobCache()
        blob = MediaBlob.from_bytes(b'not an image', mime='image/png').without_data()
        cache.cache_blob_data(payload(blob.id, b'not an image'))

        assert cache.preview(blob).thumbnail is None

    def test_thumbnail_size(self, png_bytes):
        """Test thumbnails fit the bounding box."""
        import io
        from PIL import Image

        thumb = ThumbnailService(size=40).generate(png_bytes)

        img = Image.open(io.BytesIO(thumb))
        assert max(img.size) == 40
        assert img.mode == 'RGB'

    def test_display_info(self, sample_blob):
        """Test presentation fields and fallbacks."""
        cache = BlobCache()
        bare = sample_blob.model_copy(update={'mime': None, 'source_client_id': None})

        info = cache.display_info(bare)

        assert info['mime'] == 'Unknown type'
        assert info['client_id'] == 'Unknown'
        assert info['size'] == '11.0 B'
        assert info['path'] == 'hello.txt'
        assert info['metadata'] == ''
        assert info['preview'].kind == PreviewKind.FILE
