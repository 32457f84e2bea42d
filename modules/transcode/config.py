"""
转码配置模块

定义转码相关的配置参数和默认值。
"""

from dataclasses import dataclass
from typing import Optional

from .layout import VideoLayout


@dataclass
class TranscodeConfig:
    """转码配置

    从全局配置中读取转码相关参数，提供默认值。
    """

    # 基础配置
    upload_dir: str = "uploads"
    segment_duration: int = 6  # HLS 切片时长（秒）

    # 可执行文件
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # 编码器配置
    video_encoder: str = "libx264"
    audio_encoder: str = "aac"
    audio_bitrate: str = "128k"
    x264_preset: str = "fast"

    # FFmpeg 日志级别
    loglevel: str = "error"

    # 缩略图：每 thumbnail_interval 秒一帧，宽度 thumbnail_width 像素
    thumbnail_interval: int = 10
    thumbnail_width: int = 320

    # 并发限制，0 表示不限制
    max_concurrent_jobs: int = 2

    # 超时配置（秒），encode_timeout 为 None 时编码进程不设超时
    probe_timeout: int = 30
    encode_timeout: Optional[int] = None

    # 上传大小限制（MB）
    max_upload_size_mb: int = 1024

    # 已结束任务在内存中保留的时间（秒）
    job_retention: int = 3600

    @classmethod
    def from_app_config(cls, app_config: dict) -> 'TranscodeConfig':
        """从应用配置创建 TranscodeConfig

        Args:
            app_config: 全局配置字典

        Returns:
            TranscodeConfig 实例
        """
        transcode_config = app_config.get("transcode", {}) or {}

        config = cls()

        for key in ("upload_dir", "ffmpeg_path", "ffprobe_path", "video_encoder",
                    "audio_encoder", "audio_bitrate", "x264_preset", "loglevel"):
            if transcode_config.get(key):
                setattr(config, key, str(transcode_config[key]))

        if "segment_duration" in transcode_config:
            config.segment_duration = int(transcode_config["segment_duration"] or 6)
        if "thumbnail_interval" in transcode_config:
            config.thumbnail_interval = int(transcode_config["thumbnail_interval"] or 10)
        if "thumbnail_width" in transcode_config:
            config.thumbnail_width = int(transcode_config["thumbnail_width"] or 320)
        if "max_concurrent_jobs" in transcode_config:
            config.max_concurrent_jobs = max(0, int(transcode_config["max_concurrent_jobs"] or 0))
        if "probe_timeout" in transcode_config:
            config.probe_timeout = int(transcode_config["probe_timeout"] or 30)
        if "encode_timeout" in transcode_config:
            timeout = transcode_config["encode_timeout"]
            config.encode_timeout = int(timeout) if timeout else None
        if "max_upload_size_mb" in transcode_config:
            config.max_upload_size_mb = int(transcode_config["max_upload_size_mb"] or 1024)
        if "job_retention" in transcode_config:
            config.job_retention = max(0, int(transcode_config["job_retention"] or 0))

        if config.segment_duration <= 0:
            raise ValueError("segment_duration must be positive")

        return config

    @property
    def gop_size(self) -> int:
        """关键帧间隔（帧数），固定为切片时长的 8 倍"""
        return 8 * self.segment_duration

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    def get_layout(self, video_id: str) -> VideoLayout:
        """获取视频的目录布局

        Args:
            video_id: 视频 ID

        Returns:
            VideoLayout 实例
        """
        return VideoLayout(self.upload_dir, video_id)


def get_transcode_config(app_config: dict) -> TranscodeConfig:
    """获取转码配置的便捷函数

    Args:
        app_config: 全局配置字典

    Returns:
        TranscodeConfig 实例
    """
    return TranscodeConfig.from_app_config(app_config)
