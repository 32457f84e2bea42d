"""
视频上传与查询 API 端点

上传后立即返回视频记录，转码在后台进行，客户端通过状态字段观察进度。
"""

import os
import math
import logging
from datetime import datetime, timezone

from flask import jsonify, request, send_from_directory

from .errors import DispatchError, PersistenceError, StorageError, UploadError
from .ingest import iter_file_chunks
from .task import VideoStatus

logger = logging.getLogger(__name__)

# 全局转码管理器实例（在 webserver.py 中初始化）
TRANSCODE_MANAGER = None

DEFAULT_PER_PAGE = 10
MAX_PER_PAGE = 100


def init_transcode_manager(manager):
    """初始化转码管理器

    Args:
        manager: TranscodeManager 实例
    """
    global TRANSCODE_MANAGER
    TRANSCODE_MANAGER = manager
    logger.info("Transcode manager initialized")


def _error(message, status_code):
    return jsonify({"success": False, "error": message}), status_code


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def _with_meta(video, qualities, base_url):
    """附加清晰度列表以及缩略图、播放地址"""
    video_id = video["id"]
    result = dict(video)
    result["qualities"] = qualities
    result["thumbnail_url"] = f"{base_url}/uploads/{video_id}/thumbnails/thumb_0.jpg"
    result["stream_url"] = f"{base_url}/uploads/{video_id}/hls/master.m3u8"
    return result


def register_routes(app):
    """注册视频 API 路由

    Args:
        app: Flask 应用实例
    """

    @app.route('/videos', methods=['POST'])
    def upload_video():
        """上传视频

        multipart 表单字段：
            video: 视频文件（必需）
            title: 标题（可选，默认 "Untitled"）
            description: 描述（可选）

        Returns:
            新建的视频记录 JSON（状态为 uploading）
        """
        if TRANSCODE_MANAGER is None:
            return _error("Transcode manager not initialized", 500)

        video_file = request.files.get('video')
        if video_file is None:
            return _error("No video file provided", 400)

        title = request.form.get('title') or "Untitled"
        description = request.form.get('description')

        try:
            record = TRANSCODE_MANAGER.submit_upload(
                iter_file_chunks(video_file.stream, TRANSCODE_MANAGER.writer.chunk_size),
                title=title, description=description
            )
        except UploadError as e:
            logger.warning(f"Rejected upload: {e}")
            return _error(str(e), 400)
        except StorageError as e:
            logger.error(f"Failed to store upload: {e}")
            return _error("Failed to store upload", 503)
        except PersistenceError as e:
            logger.error(f"Failed to create video record: {e}")
            return _error("Database error", 500)
        except DispatchError as e:
            logger.error(f"Failed to start transcode: {e}")
            return _error("Transcode service is shutting down", 503)

        return jsonify(record)

    @app.route('/videos', methods=['GET'])
    def list_videos():
        """获取已处理完成的视频列表

        查询参数：
            page: 页码，从 1 开始
            per_page: 每页数量，最多 100

        Returns:
            {"videos": [...], "meta": {...}}
        """
        if TRANSCODE_MANAGER is None:
            return _error("Transcode manager not initialized", 500)

        db = TRANSCODE_MANAGER.db
        page = max(1, _int_arg('page', 1))
        per_page = min(max(1, _int_arg('per_page', DEFAULT_PER_PAGE)), MAX_PER_PAGE)
        base_url = request.host_url.rstrip('/')

        try:
            videos = db.list_videos(status=VideoStatus.PROCESSED, page=page, per_page=per_page)
            qualities = db.list_qualities_for(v["id"] for v in videos)
            total = db.count_videos(status=VideoStatus.PROCESSED)
        except PersistenceError as e:
            logger.error(f"Failed to list videos: {e}")
            return _error("Database error", 500)

        return jsonify({
            "videos": [_with_meta(v, qualities.get(v["id"], []), base_url) for v in videos],
            "meta": {
                "total": total,
                "page": page,
                "per_page": per_page,
                "total_pages": math.ceil(total / per_page),
                "base": base_url,
            }
        })

    @app.route('/videos/<video_id>', methods=['GET'])
    def get_video(video_id):
        """获取单个视频（任意状态）

        Args:
            video_id: 视频 ID

        Returns:
            视频记录 JSON，不存在返回 404
        """
        if TRANSCODE_MANAGER is None:
            return _error("Transcode manager not initialized", 500)

        db = TRANSCODE_MANAGER.db
        try:
            video = db.get_video(video_id)
            if video is None:
                return _error("Video not found", 404)
            qualities = db.list_qualities(video_id)
        except PersistenceError as e:
            logger.error(f"Failed to load video {video_id}: {e}")
            return _error("Database error", 500)

        result = _with_meta(video, qualities, request.host_url.rstrip('/'))
        job = TRANSCODE_MANAGER.get_job(video_id)
        if job:
            result["job"] = job.to_dict()
        return jsonify(result)

    @app.route('/uploads/<path:filename>', methods=['GET'])
    def serve_upload(filename):
        """提供播放列表、切片和缩略图等静态文件"""
        if TRANSCODE_MANAGER is None:
            return _error("Transcode manager not initialized", 500)
        return send_from_directory(os.path.abspath(TRANSCODE_MANAGER.config.upload_dir), filename)

    @app.errorhandler(413)
    def upload_too_large(e):
        return _error("Uploaded file is too large", 413)

    @app.route('/health', methods=['GET'])
    def health_check():
        response = {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if TRANSCODE_MANAGER is not None:
            response["status_summary"] = TRANSCODE_MANAGER.get_status_summary()
        return jsonify(response)
