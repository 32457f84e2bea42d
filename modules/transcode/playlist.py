"""
HLS 主播放列表生成器

按码率阶梯顺序累积转码成功的清晰度，最终写出 master.m3u8。
"""

import os
from typing import List

from .ladder import Quality
from .layout import STREAM_PLAYLIST_NAME

MASTER_PLAYLIST_HEADER = ["#EXTM3U", "#EXT-X-VERSION:3"]


class MasterPlaylist:
    """主播放列表累加器

    只记录成功的清晰度；没有任何条目时也能输出合法的空列表。
    """

    def __init__(self):
        self._entries: List[Quality] = []

    def add_variant(self, quality: Quality) -> None:
        """追加一个清晰度条目

        Args:
            quality: 转码成功的阶梯档位
        """
        self._entries.append(quality)

    def __len__(self) -> int:
        return len(self._entries)

    def render(self) -> str:
        """生成 m3u8 内容"""
        lines = list(MASTER_PLAYLIST_HEADER)
        for quality in self._entries:
            lines.append(
                f"#EXT-X-STREAM-INF:BANDWIDTH={quality.bandwidth},RESOLUTION={quality.resolution}"
            )
            lines.append(f"{quality.label}/{STREAM_PLAYLIST_NAME}")
        return "\n".join(lines) + "\n"

    def write(self, path: str) -> None:
        """写出主播放列表

        Args:
            path: master.m3u8 路径
        """
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.render())
