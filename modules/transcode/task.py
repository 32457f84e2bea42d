"""
转码任务数据模型

定义视频状态、后台任务状态，以及每个清晰度的转码结果。
"""

import time
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List


class VideoStatus(Enum):
    """视频记录状态（持久化在 videos.status）"""
    UPLOADING = "uploading"    # 已接收上传
    PROCESSING = "processing"  # 转码中
    PROCESSED = "processed"    # 已完成
    FAILED = "failed"          # 失败

    def is_terminal(self) -> bool:
        return self in (VideoStatus.PROCESSED, VideoStatus.FAILED)


class JobStatus(Enum):
    """后台任务状态（仅存在于内存）"""
    QUEUED = "queued"        # 等待并发槽位
    RUNNING = "running"      # 运行中
    COMPLETED = "completed"  # 已结束（结果见视频状态）


@dataclass
class QualityOutcome:
    """单个清晰度的转码结果"""
    quality: str
    bitrate: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "quality": self.quality,
            "bitrate": self.bitrate,
            "success": self.success,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class TranscodeJob:
    """转码任务数据模型

    一个视频的一次后台处理。最终视频状态由全部清晰度结果汇总得出。
    """

    video_id: str

    status: JobStatus = JobStatus.QUEUED
    video_status: Optional[VideoStatus] = None
    duration: Optional[float] = None
    outcomes: List[QualityOutcome] = field(default_factory=list)
    thumbnails_ok: Optional[bool] = None
    error: Optional[str] = None

    # 时间戳
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    def mark_running(self):
        """标记为运行中"""
        self.status = JobStatus.RUNNING
        if self.started_at is None:
            self.started_at = time.time()

    def mark_completed(self, video_status: VideoStatus, error: Optional[str] = None):
        """标记为已结束

        Args:
            video_status: 写入记录的最终视频状态
            error: 致命错误信息
        """
        self.status = JobStatus.COMPLETED
        self.video_status = video_status
        if error:
            self.error = error
        self.completed_at = time.time()

    def record_outcome(self, outcome: QualityOutcome):
        self.outcomes.append(outcome)

    @property
    def succeeded(self) -> List[QualityOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[QualityOutcome]:
        return [o for o in self.outcomes if not o.success]

    def is_active(self) -> bool:
        return self.status in (JobStatus.QUEUED, JobStatus.RUNNING)

    def get_elapsed_time(self) -> float:
        """获取任务已运行时间（秒）"""
        if self.started_at is None:
            return 0
        end_time = self.completed_at or time.time()
        return end_time - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（用于 API 响应）"""
        result = {
            "video_id": self.video_id,
            "status": self.status.value,
            "duration": self.duration,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "created_at": self.created_at,
            "elapsed": self.get_elapsed_time(),
        }
        if self.video_status:
            result["video_status"] = self.video_status.value
        if self.thumbnails_ok is not None:
            result["thumbnails_ok"] = self.thumbnails_ok
        if self.started_at:
            result["started_at"] = self.started_at
        if self.completed_at:
            result["completed_at"] = self.completed_at
        if self.error:
            result["error"] = self.error
        return result
