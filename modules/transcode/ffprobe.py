"""
FFprobe 时长探测模块

使用 ffprobe 获取上传视频的时长，探测成功后立即写入视频记录，
客户端无需等待整个转码完成即可看到时长。
"""

import json
import subprocess
import logging
from typing import Any, Dict, List

from .errors import ProbeError

logger = logging.getLogger(__name__)


class FFprobeRunner:
    """FFprobe 运行器"""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout: int = 30):
        """初始化 FFprobe 运行器

        Args:
            ffprobe_path: ffprobe 可执行文件路径
            timeout: 探测超时时间（秒）
        """
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def build_command(self, source_path: str) -> List[str]:
        """构建 ffprobe 命令（静默模式，JSON 输出，只取 format 信息）"""
        return [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            source_path,
        ]

    def probe_duration(self, source_path: str) -> float:
        """获取视频时长

        Args:
            source_path: 视频文件路径

        Returns:
            时长秒数（>= 0）

        Raises:
            ProbeError: 进程失败、超时、输出无法解析或缺少 duration 字段
        """
        cmd = self.build_command(source_path)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"ffprobe timeout after {self.timeout}s for {source_path}")
            raise ProbeError(f"ffprobe timeout ({self.timeout}s)") from e
        except FileNotFoundError as e:
            logger.error("ffprobe executable not found")
            raise ProbeError("ffprobe not found") from e
        except OSError as e:
            logger.error(f"Failed to start ffprobe: {e}")
            raise ProbeError(f"Failed to start ffprobe: {e}") from e

        if result.returncode != 0:
            error_msg = (result.stderr or "").strip() or "Unknown ffprobe error"
            logger.warning(f"ffprobe error (code {result.returncode}): {error_msg}")
            raise ProbeError(f"ffprobe exited with code {result.returncode}: {error_msg}")

        try:
            raw_info = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse ffprobe output: {e}, stdout: {result.stdout[:200]}")
            raise ProbeError(f"Failed to parse ffprobe output: {e}") from e

        duration = self._parse_duration(raw_info)
        logger.info(f"ffprobe got duration: {duration}s for {source_path}")
        return duration

    def _parse_duration(self, raw_info: Dict[str, Any]) -> float:
        """从 ffprobe 输出中提取 format.duration

        Args:
            raw_info: ffprobe 原始输出

        Returns:
            时长秒数
        """
        if not isinstance(raw_info, dict):
            raise ProbeError("Unexpected ffprobe output")

        format_info = raw_info.get("format") or {}
        duration_str = format_info.get("duration")
        if duration_str is None:
            raise ProbeError("ffprobe output has no format duration")

        try:
            duration = float(duration_str)
        except (ValueError, TypeError) as e:
            raise ProbeError(f"Invalid duration value: {duration_str!r}") from e

        if duration != duration or duration < 0:
            raise ProbeError(f"Invalid duration value: {duration_str!r}")

        return duration
