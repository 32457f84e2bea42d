"""
视频目录布局

每个视频 ID 对应上传根目录下的一个独立命名空间：

    uploads/{id}/original.mp4
    uploads/{id}/hls/master.m3u8
    uploads/{id}/hls/{quality}/stream.m3u8
    uploads/{id}/hls/{quality}/segment_NNN.ts
    uploads/{id}/thumbnails/thumb_N.jpg

纯路径计算，不创建任何目录。
"""

import os


ORIGINAL_FILENAME = "original.mp4"
MASTER_PLAYLIST_NAME = "master.m3u8"
STREAM_PLAYLIST_NAME = "stream.m3u8"
SEGMENT_FILENAME_PATTERN = "segment_%03d.ts"
THUMBNAIL_FILENAME_PATTERN = "thumb_%d.jpg"


class VideoLayout:
    """视频 ID 到磁盘路径的映射"""

    def __init__(self, upload_root: str, video_id: str):
        """初始化目录布局

        Args:
            upload_root: 上传根目录，如 "uploads"
            video_id: 视频 ID

        Raises:
            ValueError: ID 为空或包含路径分隔符
        """
        if not video_id or video_id in (".", "..") or "/" in video_id or "\\" in video_id:
            raise ValueError(f"Invalid video id: {video_id!r}")
        self.upload_root = upload_root
        self.video_id = video_id

    @property
    def root(self) -> str:
        return os.path.join(self.upload_root, self.video_id)

    @property
    def original(self) -> str:
        return os.path.join(self.root, ORIGINAL_FILENAME)

    @property
    def hls(self) -> str:
        return os.path.join(self.root, "hls")

    @property
    def master_playlist(self) -> str:
        return os.path.join(self.hls, MASTER_PLAYLIST_NAME)

    @property
    def thumbnails(self) -> str:
        return os.path.join(self.root, "thumbnails")

    def quality_dir(self, quality: str) -> str:
        return os.path.join(self.hls, quality)

    def quality_playlist(self, quality: str) -> str:
        return os.path.join(self.quality_dir(quality), STREAM_PLAYLIST_NAME)

    @staticmethod
    def relative_quality_playlist(quality: str) -> str:
        """相对命名空间根目录的播放列表路径，写入 video_qualities.file_path"""
        return f"hls/{quality}/{STREAM_PLAYLIST_NAME}"

    def __repr__(self) -> str:
        return f"<VideoLayout {self.root}>"
