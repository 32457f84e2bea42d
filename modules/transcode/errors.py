"""
转码服务异常定义

上传、存储、探测、编码与持久化各自使用独立的异常类型，
边界层（HTTP 路由）据此映射为 400 / 503 / 500。
"""

from typing import Optional


class TranscodeServiceError(RuntimeError):
    """转码服务异常基类。"""


class UploadError(TranscodeServiceError):
    """上传数据有误（客户端问题）。"""


class MissingPayloadError(UploadError):
    """请求中没有视频部分，或视频部分为空。"""


class StorageError(TranscodeServiceError):
    """文件系统创建、写入或同步失败（基础设施问题）。"""


class ProbeError(TranscodeServiceError):
    """ffprobe 执行失败或输出无法解析。"""


class EncodeError(TranscodeServiceError):
    """ffmpeg 执行失败。"""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class PersistenceError(TranscodeServiceError):
    """记录存储读写失败。"""


class DispatchError(TranscodeServiceError):
    """后台任务无法派发（管理器已停止）。"""


__all__ = [
    "TranscodeServiceError",
    "UploadError",
    "MissingPayloadError",
    "StorageError",
    "ProbeError",
    "EncodeError",
    "PersistenceError",
    "DispatchError",
]
