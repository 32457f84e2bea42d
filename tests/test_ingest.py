"""
Tests for streaming uploads to disk.
"""
import io
import os

import pytest

from modules.transcode.errors import MissingPayloadError, StorageError, UploadError
from modules.transcode.ingest import UploadWriter, iter_file_chunks
from modules.transcode.layout import VideoLayout


class TestUploadWriter:
    """UploadWriter.write_stream"""

    def test_writes_chunks_in_order(self, upload_root):
        writer = UploadWriter(upload_root)

        written = writer.write_stream("v1", [b"abc", b"", b"def"])

        layout = VideoLayout(upload_root, "v1")
        with open(layout.original, "rb") as f:
            assert f.read() == b"abcdef"
        assert written == 6

    def test_small_chunks_from_file_object(self, upload_root):
        writer = UploadWriter(upload_root, chunk_size=4)

        written = writer.write_stream("v2", iter_file_chunks(io.BytesIO(b"0123456789"), writer.chunk_size))

        assert written == 10
        with open(VideoLayout(upload_root, "v2").original, "rb") as f:
            assert f.read() == b"0123456789"

    def test_missing_payload(self, upload_root):
        with pytest.raises(MissingPayloadError):
            UploadWriter(upload_root).write_stream("v1", None)

        assert os.listdir(upload_root) == []

    def test_empty_payload_leaves_no_namespace(self, upload_root):
        with pytest.raises(MissingPayloadError):
            UploadWriter(upload_root).write_stream("v1", iter([]))

        assert os.listdir(upload_root) == []

    def test_stream_error_is_upload_error_and_cleans_up(self, upload_root):
        def broken_stream():
            yield b"partial"
            raise ConnectionResetError("client went away")

        with pytest.raises(UploadError):
            UploadWriter(upload_root).write_stream("v1", broken_stream())

        assert os.listdir(upload_root) == []

    def test_existing_original_is_not_overwritten(self, upload_root):
        writer = UploadWriter(upload_root)
        writer.write_stream("v1", [b"first"])

        with pytest.raises(StorageError):
            writer.write_stream("v1", [b"second"])

        with open(VideoLayout(upload_root, "v1").original, "rb") as f:
            assert f.read() == b"first"

    def test_unwritable_root_is_storage_error(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_bytes(b"")

        with pytest.raises(StorageError):
            UploadWriter(str(blocker)).write_stream("v1", [b"data"])


class TestIterFileChunks:

    def test_splits_into_chunks(self):
        assert list(iter_file_chunks(io.BytesIO(b"abcdefg"), 3)) == [b"abc", b"def", b"g"]

    def test_empty_file(self):
        assert list(iter_file_chunks(io.BytesIO(b""), 3)) == []
