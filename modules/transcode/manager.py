"""
转码任务管理器

负责上传接收后的任务生命周期：
- 写入原始文件并创建视频记录
- 为每个视频启动一个后台转码线程
- 限制同时运行的转码数量
- 同一视频不会同时存在两个运行中的任务
"""

import time
import uuid
import shutil
import threading
import logging
from typing import Any, Dict, Iterable, List, Optional

from .config import TranscodeConfig
from .errors import DispatchError, PersistenceError
from .ffmpeg import FFmpegRunner
from .ffprobe import FFprobeRunner
from .ingest import UploadWriter
from .pipeline import TranscodePipeline
from .task import TranscodeJob, VideoStatus

logger = logging.getLogger(__name__)


class TranscodeManager:
    """转码任务管理器

    任务只保存在内存中，进程重启后不会恢复。
    """

    def __init__(
        self,
        config: TranscodeConfig,
        db,
        ffprobe_runner: Optional[FFprobeRunner] = None,
        ffmpeg_runner: Optional[FFmpegRunner] = None,
    ):
        """初始化转码管理器

        Args:
            config: 转码配置
            db: VideoDatabase 实例
            ffprobe_runner: 时长探测器（测试时可替换）
            ffmpeg_runner: FFmpeg 运行器（测试时可替换）
        """
        self.config = config
        self.db = db
        self.writer = UploadWriter(config.upload_dir)
        self.pipeline = TranscodePipeline(config, db, ffprobe_runner, ffmpeg_runner)

        self.jobs: Dict[str, TranscodeJob] = {}
        self.threads: Dict[str, threading.Thread] = {}
        self.lock = threading.RLock()
        self._stopping = threading.Event()

        # 0 表示不限制并发
        if config.max_concurrent_jobs > 0:
            self._slots = threading.BoundedSemaphore(config.max_concurrent_jobs)
        else:
            self._slots = None

    def submit_upload(
        self,
        chunks: Iterable[bytes],
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """接收一次上传

        写入原始文件、创建视频记录并派发后台转码，返回时文件已落盘。

        Args:
            chunks: 上传数据块
            title: 标题，为空时使用 "Untitled"
            description: 描述

        Returns:
            新建的视频记录（状态为 uploading）

        Raises:
            UploadError: 上传数据缺失或读取失败（此时没有任何记录）
            StorageError: 文件写入失败（此时没有任何记录）
            PersistenceError: 记录创建失败（已写入的文件会被删除）
            DispatchError: 管理器已停止，记录已置为 failed
        """
        video_id = str(uuid.uuid4())
        written = self.writer.write_stream(video_id, chunks)

        try:
            record = self.db.create_video({
                "id": video_id,
                "title": title or "Untitled",
                "description": description,
                "status": VideoStatus.UPLOADING,
            })
        except PersistenceError:
            layout = self.config.get_layout(video_id)
            shutil.rmtree(layout.root, ignore_errors=True)
            raise

        logger.info(f"Accepted upload {video_id} ({written} bytes), title: {record['title']}")
        if not self.dispatch(video_id):
            # 没有任务会推进这条记录
            self.db.update_status(video_id, VideoStatus.FAILED)
            raise DispatchError(f"Transcode job for video {video_id} was not started")
        return record

    def dispatch(self, video_id: str) -> bool:
        """派发后台转码

        Args:
            video_id: 视频 ID

        Returns:
            是否启动了新的任务；以下情况返回 False：
            管理器已停止、记录不存在、记录已是终态、该视频已有运行中的任务
        """
        if self._stopping.is_set():
            logger.warning(f"Transcode manager is stopping, not dispatching video {video_id}")
            return False

        record = self.db.get_video(video_id)
        if record is None:
            logger.warning(f"Video {video_id} not found, not dispatching")
            return False
        if VideoStatus(record["status"]).is_terminal():
            logger.warning(f"Video {video_id} is already {record['status']}, not dispatching")
            return False

        self.cleanup()

        with self.lock:
            existing = self.jobs.get(video_id)
            if existing and existing.is_active():
                logger.warning(f"Video {video_id} already has an active transcode job")
                return False

            job = TranscodeJob(video_id=video_id)
            self.jobs[video_id] = job

            # 线程只拿到视频 ID，不持有任何请求相关的对象
            thread = threading.Thread(
                target=self._run_job,
                args=(video_id,),
                daemon=True,
                name=f"Transcode-{video_id[:8]}"
            )
            self.threads[video_id] = thread
            thread.start()

        logger.info(f"Dispatched transcode job for video {video_id}")
        return True

    def _run_job(self, video_id: str):
        """后台线程入口"""
        with self.lock:
            job = self.jobs[video_id]

        if self._slots is not None:
            self._slots.acquire()
        try:
            self.pipeline.run(job)
        except Exception as e:
            # pipeline.run 自身不抛异常，这里只防止线程静默退出
            logger.error(f"Transcode thread for video {video_id} crashed: {e}", exc_info=True)
            job.mark_completed(VideoStatus.FAILED, str(e))
        finally:
            if self._slots is not None:
                self._slots.release()
            self.db.close()
            with self.lock:
                if self.threads.get(video_id) is threading.current_thread():
                    del self.threads[video_id]

    def cleanup(self) -> int:
        """清理已结束且超过保留时间的任务

        Returns:
            清理的任务数量
        """
        cutoff = time.time() - self.config.job_retention
        with self.lock:
            expired = [
                video_id for video_id, job in self.jobs.items()
                if not job.is_active() and job.completed_at is not None and job.completed_at <= cutoff
            ]
            for video_id in expired:
                del self.jobs[video_id]

        if expired:
            logger.info(f"Cleaned up {len(expired)} finished transcode jobs")
        return len(expired)

    def get_job(self, video_id: str) -> Optional[TranscodeJob]:
        """获取转码任务

        Args:
            video_id: 视频 ID

        Returns:
            TranscodeJob 对象，不存在返回 None
        """
        with self.lock:
            return self.jobs.get(video_id)

    def get_all_jobs(self) -> List[TranscodeJob]:
        with self.lock:
            return list(self.jobs.values())

    def wait(self, video_id: str, timeout: Optional[float] = None) -> bool:
        """等待某个视频的后台任务结束

        Returns:
            任务是否已结束（没有任务也返回 True）
        """
        with self.lock:
            thread = self.threads.get(video_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        """等待所有后台任务结束

        Returns:
            是否全部结束
        """
        deadline = None if timeout is None else time.time() + timeout
        with self.lock:
            threads = list(self.threads.values())

        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.time())
            thread.join(remaining)

        return not any(thread.is_alive() for thread in threads)

    def stop(self, timeout: Optional[float] = None) -> bool:
        """停止管理器

        不再接受新的任务，并等待运行中的任务结束。编码进程不会被中断。
        """
        self._stopping.set()
        finished = self.wait_all(timeout)
        if not finished:
            logger.warning("Transcode manager stopped with jobs still running")
        return finished

    def get_status_summary(self) -> Dict[str, Any]:
        """获取状态摘要

        Returns:
            状态摘要字典
        """
        with self.lock:
            active_count = 0
            total_count = len(self.jobs)

            for job in self.jobs.values():
                if job.is_active():
                    active_count += 1

            return {
                "total_jobs": total_count,
                "active_jobs": active_count,
                "max_concurrent": self.config.max_concurrent_jobs,
            }


def get_transcode_manager(config: TranscodeConfig, db, ffprobe_runner=None, ffmpeg_runner=None) -> TranscodeManager:
    """获取转码管理器实例

    Args:
        config: 转码配置
        db: VideoDatabase 实例
        ffprobe_runner: 时长探测器，默认按配置创建
        ffmpeg_runner: FFmpeg 运行器，默认按配置创建

    Returns:
        TranscodeManager 实例
    """
    return TranscodeManager(config, db, ffprobe_runner=ffprobe_runner, ffmpeg_runner=ffmpeg_runner)
