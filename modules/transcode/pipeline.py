"""
转码流水线

一个视频的完整后台处理：

1. 状态置为 processing
2. 探测时长并立即写入记录
3. 按码率阶梯依次转码，单个清晰度失败不影响后续清晰度
4. 写出主播放列表（即使为空）
5. 抽取缩略图（失败只记录日志）
6. 根据全部清晰度结果写入最终状态
"""

import os
import uuid
import logging
from typing import Optional

from .config import TranscodeConfig
from .errors import EncodeError, PersistenceError, ProbeError, StorageError, TranscodeServiceError
from .ffmpeg import FFmpegRunner
from .ffprobe import FFprobeRunner
from .ladder import QUALITY_LADDER, Quality
from .layout import VideoLayout
from .playlist import MasterPlaylist
from .task import QualityOutcome, TranscodeJob, VideoStatus

logger = logging.getLogger(__name__)


class TranscodePipeline:
    """转码流水线

    run() 不向调用方抛出异常，所有结果都反映在视频状态和任务对象上。
    """

    def __init__(
        self,
        config: TranscodeConfig,
        db,
        ffprobe_runner: Optional[FFprobeRunner] = None,
        ffmpeg_runner: Optional[FFmpegRunner] = None,
    ):
        """初始化转码流水线

        Args:
            config: 转码配置
            db: VideoDatabase 实例
            ffprobe_runner: 时长探测器，默认按配置创建
            ffmpeg_runner: FFmpeg 运行器，默认按配置创建
        """
        self.config = config
        self.db = db
        self.ffprobe_runner = ffprobe_runner or FFprobeRunner(
            config.ffprobe_path, timeout=config.probe_timeout
        )
        self.ffmpeg_runner = ffmpeg_runner or FFmpegRunner(config)

    def run(self, job: TranscodeJob) -> VideoStatus:
        """执行一次完整处理

        Args:
            job: 转码任务

        Returns:
            写入记录的最终视频状态
        """
        video_id = job.video_id
        job.mark_running()
        logger.info(f"Transcode started for video {video_id}")

        try:
            final_status = self._process(job)
        except Exception as e:
            logger.error(f"Unexpected error processing video {video_id}: {e}", exc_info=True)
            job.error = str(e)
            final_status = VideoStatus.FAILED

        self._set_status(video_id, final_status)
        job.mark_completed(final_status)
        logger.info(
            f"Transcode finished for video {video_id}: {final_status.value} "
            f"({len(job.succeeded)}/{len(job.outcomes)} qualities, "
            f"{job.get_elapsed_time():.1f}s)"
        )
        return final_status

    def _process(self, job: TranscodeJob) -> VideoStatus:
        video_id = job.video_id
        layout = self.config.get_layout(video_id)

        self.db.update_status(video_id, VideoStatus.PROCESSING)

        try:
            os.makedirs(layout.hls, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create HLS directory for video {video_id}: {e}")
            job.error = f"Failed to create HLS directory: {e}"
            return VideoStatus.FAILED

        try:
            duration = self.ffprobe_runner.probe_duration(layout.original)
        except ProbeError as e:
            logger.error(f"Failed to get duration for video {video_id}: {e}")
            job.error = str(e)
            return VideoStatus.FAILED

        # 时长独立于转码结果，探测成功立即写入
        self.db.update_duration(video_id, duration)
        job.duration = duration

        playlist = MasterPlaylist()
        for quality in QUALITY_LADDER:
            outcome = self._transcode_quality(layout, quality)
            job.record_outcome(outcome)
            if outcome.success:
                playlist.add_variant(quality)

        try:
            playlist.write(layout.master_playlist)
        except OSError as e:
            logger.error(f"Failed to write master playlist for video {video_id}: {e}")
            job.error = f"Failed to write master playlist: {e}"
            return VideoStatus.FAILED
        logger.info(f"Wrote master playlist for video {video_id} with {len(playlist)} variants")

        job.thumbnails_ok = self._generate_thumbnails(layout)

        if not job.succeeded:
            job.error = job.error or "No quality was transcoded successfully"
            return VideoStatus.FAILED
        return VideoStatus.PROCESSED

    def _transcode_quality(self, layout: VideoLayout, quality: Quality) -> QualityOutcome:
        """转码单个清晰度并写入清晰度记录"""
        video_id = layout.video_id
        logger.info(f"Transcoding video {video_id} to {quality.label} at {quality.bitrate}")

        try:
            try:
                os.makedirs(layout.quality_dir(quality.label), exist_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to create {quality.label} directory: {e}") from e

            self.ffmpeg_runner.transcode(
                layout.original,
                layout.quality_playlist(quality.label),
                quality.bitrate,
                quality.label,
                self.config.segment_duration,
            )
        except (EncodeError, StorageError) as e:
            logger.error(f"Failed to transcode video {video_id} to {quality.label}: {e}")
            return QualityOutcome(quality.label, quality.bitrate, False, str(e))

        # 没有记录的清晰度也不进入主播放列表
        try:
            self.db.insert_quality({
                "id": str(uuid.uuid4()),
                "video_id": video_id,
                "resolution": quality.label,
                "bitrate": quality.bitrate,
                "file_path": layout.relative_quality_playlist(quality.label),
            })
        except PersistenceError as e:
            logger.error(f"Failed to save {quality.label} record for video {video_id}: {e}")
            return QualityOutcome(quality.label, quality.bitrate, False, str(e))
        return QualityOutcome(quality.label, quality.bitrate, True)

    def _generate_thumbnails(self, layout: VideoLayout) -> bool:
        """抽取缩略图，失败不影响视频状态"""
        try:
            os.makedirs(layout.thumbnails, exist_ok=True)
            self.ffmpeg_runner.generate_thumbnails(layout.original, layout.thumbnails)
        except (EncodeError, OSError) as e:
            logger.error(f"Failed to generate thumbnails for video {layout.video_id}: {e}")
            return False
        return True

    def _set_status(self, video_id: str, status: VideoStatus) -> None:
        try:
            self.db.update_status(video_id, status)
        except TranscodeServiceError as e:
            logger.error(f"Failed to update status of video {video_id} to {status.value}: {e}")
