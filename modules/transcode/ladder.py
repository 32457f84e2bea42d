"""
码率阶梯

固定的清晰度 / 码率表，按从高到低的顺序处理，主播放列表也按此顺序排列。
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class Quality:
    """阶梯中的一档"""

    label: str  # 如 "720p"
    bitrate: str  # 如 "2800k"
    width: int
    height: int

    @property
    def resolution(self) -> str:
        """像素分辨率，如 "1280x720" """
        return f"{self.width}x{self.height}"

    @property
    def bandwidth(self) -> int:
        """主播放列表中的 BANDWIDTH 值（bit/s）"""
        return parse_bitrate(self.bitrate)


QUALITY_LADDER: Tuple[Quality, ...] = (
    Quality("1080p", "5000k", 1920, 1080),
    Quality("720p", "2800k", 1280, 720),
    Quality("480p", "1400k", 854, 480),
    Quality("360p", "800k", 640, 360),
)

RESOLUTION_DIMENSIONS: Dict[str, Tuple[int, int]] = {
    q.label: (q.width, q.height) for q in QUALITY_LADDER
}


def parse_bitrate(bitrate: str) -> int:
    """将 "2800k" 形式的码率转换为 bit/s

    Args:
        bitrate: 以 k 结尾的码率字符串

    Returns:
        每秒比特数

    Raises:
        ValueError: 格式无效
    """
    value = bitrate.strip()
    if value.lower().endswith("k"):
        value = value[:-1]
    kbps = int(value)
    if kbps < 0:
        raise ValueError(f"Invalid bitrate: {bitrate}")
    return kbps * 1000


def get_resolution(label: str) -> Optional[str]:
    """获取清晰度标签对应的像素分辨率，未知标签返回 None"""
    dims = RESOLUTION_DIMENSIONS.get(label)
    if dims is None:
        return None
    return f"{dims[0]}x{dims[1]}"

