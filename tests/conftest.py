"""
Pytest Configuration and Fixtures

Provides temporary upload roots, a sqlite record store, fake encoder
runners (no ffmpeg binaries needed) and a Flask test client.
"""
import pytest

from modules.transcode.config import TranscodeConfig
from modules.transcode.manager import TranscodeManager
from video_db import VideoDatabase
from fakes import FakeFFmpegRunner, FakeFFprobeRunner


@pytest.fixture
def upload_root(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return str(path)


@pytest.fixture
def transcode_config(upload_root):
    return TranscodeConfig(upload_dir=upload_root)


@pytest.fixture
def db(tmp_path):
    """Fresh sqlite record store per test."""
    database = VideoDatabase(db_file=str(tmp_path / "data" / "videos.db"))
    yield database
    database.close()


@pytest.fixture
def ffprobe_runner():
    return FakeFFprobeRunner()


@pytest.fixture
def ffmpeg_runner():
    return FakeFFmpegRunner()


@pytest.fixture
def manager(transcode_config, db, ffprobe_runner, ffmpeg_runner):
    mgr = TranscodeManager(
        transcode_config, db, ffprobe_runner=ffprobe_runner, ffmpeg_runner=ffmpeg_runner
    )
    yield mgr
    mgr.stop(timeout=10)


@pytest.fixture
def app_config(tmp_path, upload_root):
    return {
        "db_file": str(tmp_path / "data" / "app.db"),
        "transcode": {
            "upload_dir": upload_root,
            "max_concurrent_jobs": 2,
        },
    }


@pytest.fixture
def app(app_config, ffprobe_runner, ffmpeg_runner):
    from webserver import create_app

    flask_app = create_app(app_config, ffprobe_runner=ffprobe_runner, ffmpeg_runner=ffmpeg_runner)
    flask_app.config['TESTING'] = True
    yield flask_app
    flask_app.extensions['transcode_manager'].stop(timeout=10)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_video(db):
    """Insert a video row directly, bypassing upload."""
    def _make(video_id, status="uploading", title="Sample", created_at=None):
        record = {"id": video_id, "title": title, "status": status}
        if created_at:
            record["created_at"] = created_at
        return db.create_video(record)
    return _make
