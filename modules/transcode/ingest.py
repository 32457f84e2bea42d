"""
上传写入模块

把上传的字节流按到达顺序写入 uploads/{id}/original.mp4，
返回前强制落盘（fsync），保证后台转码读到的是完整文件。
"""

import os
import shutil
import logging
from typing import BinaryIO, Iterable, Iterator

from .errors import MissingPayloadError, StorageError, UploadError
from .layout import VideoLayout

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1 MiB


def iter_file_chunks(fileobj: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """将文件对象（如 werkzeug FileStorage）转换为分块迭代器"""
    while True:
        chunk = fileobj.read(chunk_size)
        if not chunk:
            break
        yield chunk


class UploadWriter:
    """上传写入器"""

    def __init__(self, upload_root: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """初始化上传写入器

        Args:
            upload_root: 上传根目录
            chunk_size: 读取文件对象时的块大小
        """
        self.upload_root = upload_root
        self.chunk_size = chunk_size

    def write_stream(self, video_id: str, chunks: Iterable[bytes]) -> int:
        """写入上传数据

        Args:
            video_id: 视频 ID
            chunks: 按顺序到达的字节块

        Returns:
            写入的字节数

        Raises:
            MissingPayloadError: 没有数据
            UploadError: 读取上传流失败
            StorageError: 目录创建、写入或同步失败
        """
        if chunks is None:
            raise MissingPayloadError("No video file provided")

        layout = VideoLayout(self.upload_root, video_id)
        root_existed = os.path.isdir(layout.root)

        try:
            os.makedirs(layout.root, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create upload directory {layout.root}: {e}")
            raise StorageError("Failed to create upload directory") from e

        try:
            # 独占创建，同一 ID 不会被写入两次
            f = open(layout.original, "xb")
        except OSError as e:
            logger.error(f"Failed to open file {layout.original}: {e}")
            if not root_existed:
                shutil.rmtree(layout.root, ignore_errors=True)
            raise StorageError("Failed to open upload file") from e

        try:
            with f:
                written = self._copy_chunks(f, chunks)
        except Exception:
            self._discard(layout, root_existed)
            raise

        if written == 0:
            self._discard(layout, root_existed)
            raise MissingPayloadError("Uploaded video file is empty")

        logger.info(f"Stored upload for video {video_id}: {written} bytes")
        return written

    def _copy_chunks(self, f: BinaryIO, chunks: Iterable[bytes]) -> int:
        """逐块写入并落盘

        读取上传流的异常归为 UploadError，文件写入 / 同步的异常归为 StorageError。
        """
        written = 0
        iterator = iter(chunks)
        while True:
            try:
                chunk = next(iterator)
            except StopIteration:
                break
            except Exception as e:
                logger.error(f"Error getting chunk: {e}")
                raise UploadError("Failed to read upload stream") from e

            if not chunk:
                continue

            try:
                f.write(chunk)
            except OSError as e:
                logger.error(f"Error writing chunk: {e}")
                raise StorageError("Failed to write upload file") from e
            written += len(chunk)

        try:
            f.flush()
            os.fsync(f.fileno())
        except OSError as e:
            logger.error(f"Error syncing file: {e}")
            raise StorageError("Failed to sync upload file") from e

        return written

    def _discard(self, layout: VideoLayout, root_existed: bool) -> None:
        """清理写入失败的文件；命名空间目录是本次创建的则一并删除"""
        try:
            if not root_existed:
                shutil.rmtree(layout.root, ignore_errors=True)
            elif os.path.exists(layout.original):
                os.remove(layout.original)
        except OSError as e:
            logger.warning(f"Failed to clean up {layout.root}: {e}")
