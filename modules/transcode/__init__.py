"""
视频转码服务模块

接收上传的视频，在后台转码为多清晰度的 HLS 点播包。

核心特性：
- 上传数据流式写入磁盘，返回前强制落盘
- 固定码率阶梯（1080p / 720p / 480p / 360p），单个清晰度失败不影响其他清晰度
- 使用 ffprobe 获取视频时长，探测成功即写入记录
- 生成主播放列表和预览缩略图
- 视频状态 uploading -> processing -> processed | failed
"""

from .config import TranscodeConfig, get_transcode_config
from .errors import (
    TranscodeServiceError,
    UploadError,
    MissingPayloadError,
    StorageError,
    ProbeError,
    EncodeError,
    PersistenceError,
    DispatchError,
)
from .task import TranscodeJob, JobStatus, VideoStatus, QualityOutcome
from .ladder import QUALITY_LADDER, Quality
from .layout import VideoLayout
from .playlist import MasterPlaylist
from .ffprobe import FFprobeRunner
from .ffmpeg import FFmpegRunner
from .ingest import UploadWriter
from .pipeline import TranscodePipeline
from .manager import TranscodeManager, get_transcode_manager

__all__ = [
    'TranscodeConfig',
    'get_transcode_config',
    'TranscodeServiceError',
    'UploadError',
    'MissingPayloadError',
    'StorageError',
    'ProbeError',
    'EncodeError',
    'PersistenceError',
    'DispatchError',
    'TranscodeJob',
    'JobStatus',
    'VideoStatus',
    'QualityOutcome',
    'QUALITY_LADDER',
    'Quality',
    'VideoLayout',
    'MasterPlaylist',
    'FFprobeRunner',
    'FFmpegRunner',
    'UploadWriter',
    'TranscodePipeline',
    'TranscodeManager',
    'get_transcode_manager',
]
