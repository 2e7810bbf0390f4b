"""Tests for upload sources and file validation."""
import pytest

from blobwire.core.blobs import sha256_hex, sha256_stream
from blobwire.core.exceptions import UploadError, UploadErrorKind
from blobwire.core.upload.services import (
    BytesUploadSource,
    FileValidator,
    PathUploadSource,
    as_upload_source,
    format_size,
)


class TestFileValidator:
    """Test suite for FileValidator."""

    @pytest.fixture
    def validator(self):
        return FileValidator()

    def test_validate_path(self, validator, tmp_path):
        """Test an existing file."""
        path = tmp_path / 'a.txt'
        path.write_bytes(b'12345')

        validated, size = validator.validate_path(path)

        assert validated == path
        assert size == 5

    def test_validate_missing_path(self, validator, tmp_path):
        """Test a missing file."""
        with pytest.raises(UploadError) as exc_info:
            validator.validate_path(tmp_path / 'missing.txt')

        assert exc_info.value.kind == UploadErrorKind.INVALID_FILE

    def test_validate_directory(self, validator, tmp_path):
        """Test a directory is not a file."""
        with pytest.raises(UploadError, match="not a file"):
            validator.validate_path(tmp_path)

    def test_empty(self, validator):
        """Test the empty file message."""
        with pytest.raises(UploadError) as exc_info:
            validator.check_not_empty(BytesUploadSource(b'', 'e.txt'))

        assert exc_info.value.kind == UploadErrorKind.EMPTY_FILE
        assert exc_info.value.message == 'File "e.txt" is empty.'

    def test_size_bounds(self, validator):
        """Test min and max checks."""
        source = BytesUploadSource(b'x' * 10, 'a.bin')

        validator.check_max_size(source, 10)
        validator.check_min_size(source, 10)
        with pytest.raises(UploadError, match="too large"):
            validator.check_max_size(source, 9)
        with pytest.raises(UploadError) as exc_info:
            validator.check_min_size(source, 11)
        assert exc_info.value.kind == UploadErrorKind.FILE_TOO_SMALL

    @pytest.mark.parametrize('name', ['../a.txt', 'dir/a.txt', 'dir\\a.txt', ''])
    def test_bad_filenames(self, validator, name):
        """Test names with traversal or separators."""
        with pytest.raises(UploadError, match="Invalid filename"):
            validator.check_filename(BytesUploadSource(b'x', name))


class TestSources:
    """Test suite for upload sources."""

    def test_as_upload_source(self, tmp_path):
        """Test accepted inputs."""
        path = tmp_path / 'photo.png'
        path.write_bytes(b'png')

        assert isinstance(as_upload_source(path), PathUploadSource)
        assert isinstance(as_upload_source(str(path)), PathUploadSource)
        assert isinstance(as_upload_source(('a.txt', b'x')), BytesUploadSource)

        source = BytesUploadSource(b'x', 'b.txt')
        assert as_upload_source(source) is source

    def test_unsupported_source(self):
        """Test unsupported values."""
        with pytest.raises(TypeError):
            as_upload_source(42)

    def test_path_source_attributes(self, tmp_path):
        """Test name, size and MIME type."""
        path = tmp_path / 'photo.png'
        path.write_bytes(b'12345')

        source = PathUploadSource(path)

        assert source.name == 'photo.png'
        assert source.size == 5
        assert source.mime == 'image/png'
        assert source.last_modified is not None

    @pytest.mark.asyncio
    async def test_chunked_read_matches_whole(self, tmp_path):
        """Test streaming and whole reads digest the same bytes."""
        data = bytes(range(256)) * 10
        path = tmp_path / 'data.bin'
        path.write_bytes(data)
        source = PathUploadSource(path)

        chunks = [chunk async for chunk in source.iter_chunks(1000)]

        assert [len(c) for c in chunks] == [1000, 1000, 560]
        assert await source.read() == data
        assert await sha256_stream(source.iter_chunks(100)) == sha256_hex(data)

    @pytest.mark.asyncio
    async def test_bytes_source_chunks(self):
        """Test in-memory chunking."""
        source = BytesUploadSource(b'abcdefg', 'a.txt')

        chunks = [chunk async for chunk in source.iter_chunks(3)]

        assert chunks == [b'abc', b'def', b'g']


class TestFormatSize:
    """Test suite for validation message sizes."""

    def test_units(self):
        """Test unit selection."""
        assert format_size(100) == '100.0 B'
        assert format_size(10 * 1024 * 1024) == '10.0 MB'
