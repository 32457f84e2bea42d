"""
Tests for upload submission and background job dispatch.
"""
import os
import threading

import pytest

from modules.transcode.config import TranscodeConfig
from modules.transcode.errors import DispatchError, MissingPayloadError, PersistenceError
from modules.transcode.manager import TranscodeManager
from modules.transcode.task import JobStatus, VideoStatus
from fakes import FakeFFmpegRunner, FakeFFprobeRunner


class TestSubmitUpload:
    """TranscodeManager.submit_upload"""

    def test_returns_uploading_record_and_processes(self, manager, db, upload_root):
        record = manager.submit_upload([b"video-bytes"], title="Clip", description="d")

        assert record["status"] == "uploading"
        assert record["title"] == "Clip"
        assert os.path.isfile(os.path.join(upload_root, record["id"], "original.mp4"))

        assert manager.wait(record["id"], timeout=10)
        assert db.get_video(record["id"])["status"] == "processed"
        assert manager.get_job(record["id"]).status == JobStatus.COMPLETED

    def test_default_title(self, manager):
        record = manager.submit_upload([b"x"])

        assert record["title"] == "Untitled"

    def test_missing_payload_creates_nothing(self, manager, db, upload_root):
        with pytest.raises(MissingPayloadError):
            manager.submit_upload(iter([]))

        assert db.count_videos() == 0
        assert os.listdir(upload_root) == []
        assert manager.get_all_jobs() == []

    def test_record_failure_removes_namespace(self, manager, db, upload_root, monkeypatch):
        def fail_create(record):
            raise PersistenceError("disk I/O error")

        monkeypatch.setattr(db, "create_video", fail_create)

        with pytest.raises(PersistenceError):
            manager.submit_upload([b"data"])

        assert os.listdir(upload_root) == []

    def test_stopped_manager_fails_new_upload(self, manager, db):
        manager.stop(timeout=1)

        with pytest.raises(DispatchError):
            manager.submit_upload([b"late"])

        videos = db.list_videos()
        assert len(videos) == 1
        assert videos[0]["status"] == "failed"
        assert manager.get_all_jobs() == []


class TestDispatch:
    """Run-uniqueness guard and concurrency bound"""

    def test_second_dispatch_while_active_is_refused(self, transcode_config, db, make_video):
        gate = threading.Event()
        ffmpeg = FakeFFmpegRunner(gate=gate)
        mgr = TranscodeManager(transcode_config, db, FakeFFprobeRunner(), ffmpeg)
        layout = transcode_config.get_layout("v1")
        os.makedirs(layout.root)
        with open(layout.original, "wb") as f:
            f.write(b"data")
        make_video("v1")

        try:
            assert mgr.dispatch("v1") is True
            assert mgr.dispatch("v1") is False
        finally:
            gate.set()
            mgr.stop(timeout=10)

        assert db.get_video("v1")["status"] == "processed"
        assert len(ffmpeg.transcode_calls) == 4

    def test_dispatch_after_completion_is_refused(self, manager, db, monkeypatch):
        record = manager.submit_upload([b"data"])
        manager.wait(record["id"], timeout=10)
        transitions = []
        monkeypatch.setattr(db, "update_status", lambda video_id, status: transitions.append(status))

        assert manager.dispatch(record["id"]) is False

        assert transitions == []
        assert db.get_video(record["id"])["status"] == "processed"
        assert len(db.list_qualities(record["id"])) == 4

    def test_dispatch_of_failed_video_is_refused(self, manager, make_video):
        make_video("v-failed", status="failed")

        assert manager.dispatch("v-failed") is False
        assert manager.get_job("v-failed") is None

    def test_stopped_manager_refuses_dispatch(self, manager):
        manager.stop(timeout=1)

        assert manager.dispatch("anything") is False

    def test_concurrency_is_bounded(self, upload_root, db):
        gate = threading.Event()
        ffmpeg = FakeFFmpegRunner(gate=gate)
        config = TranscodeConfig(upload_dir=upload_root, max_concurrent_jobs=1)
        mgr = TranscodeManager(config, db, FakeFFprobeRunner(), ffmpeg)

        try:
            mgr.submit_upload([b"one"])
            mgr.submit_upload([b"two"])
            gate.set()
            assert mgr.wait_all(timeout=10)
        finally:
            mgr.stop(timeout=10)

        assert ffmpeg.max_active == 1


class TestConcurrentUploads:
    """Two uploads in flight at once"""

    def test_disjoint_namespaces(self, manager, db, upload_root):
        records = []
        errors = []

        def upload(payload):
            try:
                records.append(manager.submit_upload([payload]))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=upload, args=(p,)) for p in (b"first", b"second")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert manager.wait_all(timeout=10)

        ids = {r["id"] for r in records}
        assert len(ids) == 2
        assert sorted(os.listdir(upload_root)) == sorted(ids)
        contents = set()
        for video_id in ids:
            with open(os.path.join(upload_root, video_id, "original.mp4"), "rb") as f:
                contents.add(f.read())
            assert db.get_video(video_id)["status"] == VideoStatus.PROCESSED.value
            assert len(db.list_qualities(video_id)) == 4
        assert contents == {b"first", b"second"}

    def test_status_summary(self, manager):
        record = manager.submit_upload([b"data"])
        manager.wait(record["id"], timeout=10)

        summary = manager.get_status_summary()

        assert summary == {"total_jobs": 1, "active_jobs": 0, "max_concurrent": 2}


class TestJobRetention:
    """Finished jobs and threads do not accumulate"""

    def test_finished_thread_is_forgotten(self, manager):
        record = manager.submit_upload([b"data"])
        assert manager.wait(record["id"], timeout=10)

        assert manager.threads == {}
        # still within the retention window
        assert manager.get_job(record["id"]) is not None
        assert manager.cleanup() == 0

    def test_expired_jobs_are_pruned(self, upload_root, db):
        config = TranscodeConfig(upload_dir=upload_root, job_retention=0)
        mgr = TranscodeManager(config, db, FakeFFprobeRunner(), FakeFFmpegRunner())

        try:
            first = mgr.submit_upload([b"one"])
            assert mgr.wait(first["id"], timeout=10)
            mgr.get_job(first["id"]).completed_at -= 1

            assert mgr.cleanup() == 1
            assert mgr.get_job(first["id"]) is None
        finally:
            mgr.stop(timeout=10)

    def test_dispatch_prunes_expired_jobs(self, upload_root, db):
        config = TranscodeConfig(upload_dir=upload_root, job_retention=0)
        mgr = TranscodeManager(config, db, FakeFFprobeRunner(), FakeFFmpegRunner())

        try:
            first = mgr.submit_upload([b"one"])
            assert mgr.wait(first["id"], timeout=10)
            mgr.get_job(first["id"]).completed_at -= 1

            second = mgr.submit_upload([b"two"])
            assert mgr.wait(second["id"], timeout=10)
        finally:
            mgr.stop(timeout=10)

        assert mgr.get_job(first["id"]) is None
        assert db.get_video(first["id"])["status"] == "processed"
