import os
import sqlite3
import logging
import threading
from datetime import datetime, timezone

from modules.transcode.errors import PersistenceError
from modules.transcode.task import VideoStatus

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100


def utc_now():
    """Current UTC time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


class VideoDatabase:
    """视频数据库类，保存视频记录及其各清晰度的转码结果

    每个线程使用独立的 sqlite 连接；每次写入单独提交。
    """

    def __init__(self, db_file="data/videos.db"):
        """初始化数据库连接"""
        self.db_path = db_file
        self.local = threading.local()  # 使用线程本地存储
        logger.info(f"Initializing VideoDatabase with database file: {self.db_path}")
        self.connect()
        self.create_tables()

    def connect(self):
        """连接到数据库，每个线程使用独立的连接"""
        try:
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

            if getattr(self.local, 'conn', None) is None:
                conn = sqlite3.connect(self.db_path, timeout=30)
                conn.row_factory = sqlite3.Row  # 使查询结果可以通过列名访问
                conn.execute('PRAGMA foreign_keys = ON')
                conn.execute('PRAGMA journal_mode = WAL')
                self.local.conn = conn
        except (sqlite3.Error, OSError) as e:
            logger.error(f"数据库连接错误: {e}")
            raise PersistenceError(f"Failed to connect to database: {e}") from e

    def close(self):
        """关闭当前线程的数据库连接"""
        if getattr(self.local, 'conn', None) is not None:
            self.local.conn.close()
            self.local.conn = None

    @property
    def conn(self):
        """确保当前线程有可用的数据库连接"""
        if getattr(self.local, 'conn', None) is None:
            self.connect()
        return self.local.conn

    def create_tables(self):
        """创建必要的数据表"""
        try:
            self.conn.executescript('''
            CREATE TABLE IF NOT EXISTS videos (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT,
                duration REAL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS video_qualities (
                id TEXT PRIMARY KEY,
                video_id TEXT NOT NULL,
                resolution TEXT NOT NULL,
                bitrate TEXT NOT NULL,
                file_path TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (video_id) REFERENCES videos (id)
            );

            CREATE INDEX IF NOT EXISTS idx_videos_status_created
                ON videos (status, created_at);
            CREATE INDEX IF NOT EXISTS idx_video_qualities_video_id
                ON video_qualities (video_id);
            ''')
            self.conn.commit()
        except sqlite3.Error as e:
            logger.error(f"创建表错误: {e}")
            raise PersistenceError(f"Failed to create tables: {e}") from e

    # ------------------------------------------------------------------
    # 写操作（转码流程使用）
    # ------------------------------------------------------------------
    def create_video(self, record):
        """插入视频记录，ID 已存在时抛出 PersistenceError"""
        now = utc_now()
        status = record.get('status', VideoStatus.UPLOADING)
        row = {
            'id': record['id'],
            'title': record.get('title') or 'Untitled',
            'description': record.get('description'),
            'duration': record.get('duration'),
            'status': status.value if isinstance(status, VideoStatus) else VideoStatus(status).value,
            'created_at': record.get('created_at') or now,
            'updated_at': record.get('updated_at') or now,
        }
        try:
            self.conn.execute('''
            INSERT INTO videos (id, title, description, duration, status, created_at, updated_at)
            VALUES (:id, :title, :description, :duration, :status, :created_at, :updated_at)
            ''', row)
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"保存视频记录错误: {e}")
            raise PersistenceError(f"Failed to create video {row['id']}: {e}") from e
        return row

    def update_status(self, video_id, status):
        """更新视频状态"""
        status = VideoStatus(status)
        self._update_video(video_id, 'status', status.value)

    def update_duration(self, video_id, seconds):
        """更新视频时长（秒）"""
        if seconds is None or seconds < 0:
            raise ValueError(f"duration must be >= 0, got {seconds!r}")
        self._update_video(video_id, 'duration', float(seconds))

    def _update_video(self, video_id, column, value):
        try:
            cursor = self.conn.execute(
                f'UPDATE videos SET {column} = ?, updated_at = ? WHERE id = ?',
                (value, utc_now(), video_id)
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"更新视频 {column} 错误: {e}")
            raise PersistenceError(f"Failed to update {column} of video {video_id}: {e}") from e
        if cursor.rowcount == 0:
            raise PersistenceError(f"Video {video_id} not found")

    def insert_quality(self, record):
        """插入一条清晰度记录（不去重）"""
        row = {
            'id': record['id'],
            'video_id': record['video_id'],
            'resolution': record['resolution'],
            'bitrate': record['bitrate'],
            'file_path': record['file_path'],
            'created_at': record.get('created_at') or utc_now(),
        }
        try:
            self.conn.execute('''
            INSERT INTO video_qualities (id, video_id, resolution, bitrate, file_path, created_at)
            VALUES (:id, :video_id, :resolution, :bitrate, :file_path, :created_at)
            ''', row)
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"保存清晰度记录错误: {e}")
            raise PersistenceError(f"Failed to insert quality for video {row['video_id']}: {e}") from e
        return row

    # ------------------------------------------------------------------
    # 读操作
    # ------------------------------------------------------------------
    def get_video(self, video_id):
        """获取视频记录，不存在返回 None"""
        try:
            row = self.conn.execute('SELECT * FROM videos WHERE id = ?', (video_id,)).fetchone()
        except sqlite3.Error as e:
            logger.error(f"获取视频记录错误: {e}")
            raise PersistenceError(f"Failed to load video {video_id}: {e}") from e
        return dict(row) if row else None

    def list_videos(self, status=None, page=1, per_page=10):
        """分页获取视频列表，按创建时间倒序"""
        page = max(1, int(page))
        per_page = min(max(1, int(per_page)), MAX_PER_PAGE)
        offset = (page - 1) * per_page

        query = 'SELECT * FROM videos'
        params = []
        if status is not None:
            query += ' WHERE status = ?'
            params.append(VideoStatus(status).value)
        query += ' ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?'
        params.extend([per_page, offset])

        try:
            rows = self.conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"获取视频列表错误: {e}")
            raise PersistenceError(f"Failed to list videos: {e}") from e
        return [dict(row) for row in rows]

    def count_videos(self, status=None):
        """统计视频数量"""
        query = 'SELECT COUNT(*) FROM videos'
        params = []
        if status is not None:
            query += ' WHERE status = ?'
            params.append(VideoStatus(status).value)
        try:
            return self.conn.execute(query, params).fetchone()[0]
        except sqlite3.Error as e:
            logger.error(f"统计视频数量错误: {e}")
            raise PersistenceError(f"Failed to count videos: {e}") from e

    def list_qualities(self, video_id):
        """获取一个视频的全部清晰度记录"""
        return self.list_qualities_for([video_id]).get(video_id, [])

    def list_qualities_for(self, video_ids):
        """批量获取清晰度记录，返回 {video_id: [quality, ...]}"""
        video_ids = list(video_ids)
        if not video_ids:
            return {}
        placeholders = ','.join('?' for _ in video_ids)
        try:
            rows = self.conn.execute(f'''
            SELECT * FROM video_qualities
            WHERE video_id IN ({placeholders})
            ORDER BY created_at, rowid
            ''', video_ids).fetchall()
        except sqlite3.Error as e:
            logger.error(f"获取清晰度记录错误: {e}")
            raise PersistenceError(f"Failed to list qualities: {e}") from e

        result = {}
        for row in rows:
            result.setdefault(row['video_id'], []).append(dict(row))
        return result
