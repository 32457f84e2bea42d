"""
FFmpeg 进程管理模块

负责构建和执行 FFmpeg 命令：按清晰度输出 HLS 切片，以及抽取预览缩略图。
"""

import os
import subprocess
import logging
from typing import List, Optional

from .config import TranscodeConfig
from .errors import EncodeError
from .ladder import get_resolution
from .layout import SEGMENT_FILENAME_PATTERN, THUMBNAIL_FILENAME_PATTERN

logger = logging.getLogger(__name__)


class FFmpegRunner:
    """FFmpeg 进程管理器

    构建 FFmpeg 命令并同步等待进程结束，非零退出码转换为 EncodeError。
    """

    def __init__(self, config: TranscodeConfig):
        """初始化 FFmpeg 运行器

        Args:
            config: 转码配置
        """
        self.config = config
        self.ffmpeg_path = config.ffmpeg_path

    def build_command(
        self,
        input_path: str,
        output_playlist: str,
        bitrate: str,
        resolution_label: str,
        segment_duration: int,
    ) -> List[str]:
        """构建 HLS 转码命令

        Args:
            input_path: 源文件路径
            output_playlist: 输出的清晰度播放列表路径
            bitrate: 目标视频码率，如 "2800k"
            resolution_label: 清晰度标签，如 "720p"
            segment_duration: 切片时长（秒）

        Returns:
            FFmpeg 命令列表

        Raises:
            EncodeError: 未知的清晰度标签
        """
        resolution = get_resolution(resolution_label)
        if resolution is None:
            raise EncodeError(f"Invalid quality: {resolution_label}")

        # 固定 GOP，禁用场景切换检测，保证切片边界规整
        gop_size = str(8 * segment_duration)
        segment_filename = os.path.join(os.path.dirname(output_playlist), SEGMENT_FILENAME_PATTERN)

        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel", self.config.loglevel,
            "-y",
            "-i", input_path,
            "-c:v", self.config.video_encoder,
            "-c:a", self.config.audio_encoder,
            "-b:v", bitrate,
            "-b:a", self.config.audio_bitrate,
            "-s", resolution,
            "-preset", self.config.x264_preset,
            "-g", gop_size,
            "-keyint_min", gop_size,
            "-sc_threshold", "0",
        ]

        # HLS 输出参数
        cmd.extend([
            "-f", "hls",
            "-hls_time", str(segment_duration),
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", segment_filename,
            output_playlist,
        ])

        return cmd

    def build_thumbnail_command(self, input_path: str, thumbnails_dir: str) -> List[str]:
        """构建缩略图抽取命令

        Args:
            input_path: 源文件路径
            thumbnails_dir: 缩略图输出目录

        Returns:
            FFmpeg 命令列表
        """
        video_filter = f"fps=1/{self.config.thumbnail_interval},scale={self.config.thumbnail_width}:-1"
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel", self.config.loglevel,
            "-y",
            "-i", input_path,
            "-vf", video_filter,
            "-frame_pts", "1",
            os.path.join(thumbnails_dir, THUMBNAIL_FILENAME_PATTERN),
        ]

    def transcode(
        self,
        input_path: str,
        output_playlist: str,
        bitrate: str,
        resolution_label: str,
        segment_duration: int,
    ) -> None:
        """转码为单一清晰度的 HLS

        切片文件与播放列表写在同一目录。失败时不保证已有输出的完整性。

        Raises:
            EncodeError: 未知清晰度或 FFmpeg 执行失败
        """
        command = self.build_command(
            input_path, output_playlist, bitrate, resolution_label, segment_duration
        )
        self._run(command, f"transcode {resolution_label}")

    def generate_thumbnails(self, input_path: str, thumbnails_dir: str) -> None:
        """抽取预览缩略图

        Raises:
            EncodeError: FFmpeg 执行失败
        """
        command = self.build_thumbnail_command(input_path, thumbnails_dir)
        self._run(command, "thumbnails")

    def _run(self, command: List[str], description: str) -> None:
        """执行 FFmpeg 并等待结束

        Args:
            command: FFmpeg 命令
            description: 日志用的操作描述
        """
        logger.info(f"Starting FFmpeg ({description}): {self.get_command_line_string(command)}")
        timeout: Optional[int] = self.config.encode_timeout

        try:
            result = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise EncodeError(f"FFmpeg {description} timed out after {timeout}s") from e
        except FileNotFoundError as e:
            raise EncodeError("ffmpeg executable not found") from e
        except OSError as e:
            raise EncodeError(f"Failed to start FFmpeg ({description}): {e}") from e

        if result.returncode != 0:
            stderr_tail = (result.stderr or "").strip()[-500:]
            raise EncodeError(
                f"FFmpeg {description} failed with code {result.returncode}: {stderr_tail}",
                returncode=result.returncode,
            )

    def get_command_line_string(self, command: List[str]) -> str:
        """获取命令行字符串（用于日志记录）"""
        return " ".join(command)
