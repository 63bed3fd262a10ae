"""Tests for pdfforge.lifecycle - staging, deferred release, sweeping."""

import os
import threading
import time
from pathlib import Path

import pytest

from pdfforge import lifecycle
from pdfforge.errors import StagingError
from pdfforge.lifecycle import DelayQueue, FileLifecycleManager


def _age(path: Path, seconds: float) -> None:
    """Backdate a file's mtime."""
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


class TestDelayQueue:
    """Tests for DelayQueue."""

    def test_runs_only_when_due(self, fake_clock):
        """Tasks run once the clock passes their due time."""
        queue = DelayQueue(clock=fake_clock)
        ran = []
        queue.schedule(5.0, ran.append, "a")
        assert queue.run_due() == 0
        fake_clock.advance(4.9)
        assert queue.run_due() == 0
        fake_clock.advance(0.2)
        assert queue.run_due() == 1
        assert ran == ["a"]
        assert queue.pending == 0

    def test_due_order(self, fake_clock):
        """Tasks run in due-time order, ties in scheduling order."""
        queue = DelayQueue(clock=fake_clock)
        ran = []
        queue.schedule(10, ran.append, "late")
        queue.schedule(1, ran.append, "early")
        queue.schedule(1, ran.append, "early-2")
        fake_clock.advance(20)
        queue.run_due()
        assert ran == ["early", "early-2", "late"]

    def test_cancel(self, fake_clock):
        """Cancelled tasks never run."""
        queue = DelayQueue(clock=fake_clock)
        ran = []
        task = queue.schedule(1, ran.append, "x")
        queue.cancel(task)
        assert queue.pending == 0
        assert queue.next_due() is None
        fake_clock.advance(5)
        assert queue.run_due() == 0
        assert ran == []

    def test_flush_runs_everything(self, fake_clock):
        """flush() runs pending tasks regardless of due time."""
        queue = DelayQueue(clock=fake_clock)
        ran = []
        queue.schedule(100, ran.append, 1)
        queue.schedule(200, ran.append, 2)
        assert queue.flush() == 2
        assert ran == [1, 2]

    def test_failing_callback_does_not_stop_others(self, fake_clock):
        """A raising callback is logged and the queue keeps going."""
        queue = DelayQueue(clock=fake_clock)
        ran = []

        def boom():
            raise RuntimeError("boom")

        queue.schedule(1, boom)
        queue.schedule(1, ran.append, "after")
        fake_clock.advance(2)
        assert queue.run_due() == 2
        assert ran == ["after"]

    def test_background_thread(self):
        """The runner thread executes tasks on the real clock."""
        queue = DelayQueue()
        done = threading.Event()
        queue.start()
        try:
            assert queue.running
            queue.schedule(0.05, done.set)
            assert done.wait(timeout=5)
        finally:
            queue.stop()
        assert not queue.running


class TestFileLifecycleManager:
    """Tests for FileLifecycleManager."""

    def test_creates_managed_directories(self, tmp_path: Path):
        """uploads/ and processed/ exist after construction."""
        manager = FileLifecycleManager(tmp_path / "root")
        assert manager.uploads_dir.is_dir()
        assert manager.processed_dir.is_dir()

    def test_unusable_root(self, tmp_path: Path):
        """A root that cannot be created is a staging error."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StagingError):
            FileLifecycleManager(blocker / "root")

    def test_stage_bytes(self, manager):
        """Staged uploads land in uploads/ with a unique name."""
        first = manager.stage(b"%PDF-1.4 one")
        second = manager.stage(b"%PDF-1.4 two")
        assert first.path.parent == manager.uploads_dir
        assert first.path != second.path
        assert first.path.read_bytes() == b"%PDF-1.4 one"
        assert first.name.startswith("upload-")
        assert first.name.endswith(".pdf")

    def test_stage_file(self, manager, minimal_pdf: Path):
        """Existing files are copied into uploads/."""
        staged = manager.stage_file(minimal_pdf)
        assert staged.path.parent == manager.uploads_dir
        assert staged.path.read_bytes() == minimal_pdf.read_bytes()
        assert minimal_pdf.exists()

    def test_stage_missing_file(self, manager, tmp_path: Path, staged_files):
        """Staging a missing file fails cleanly."""
        with pytest.raises(StagingError):
            manager.stage_file(tmp_path / "missing.pdf")
        assert staged_files(manager) == []

    def test_artifact_path_naming(self, manager):
        """Artifact paths follow purpose-label-timestamp naming."""
        path = manager.artifact_path("chunk", "2-pages-3-4")
        assert path.parent == manager.processed_dir
        assert path.name.startswith("chunk-2-pages-3-4-")
        assert path.suffix == ".pdf"
        assert manager.artifact_path("chunk", "2-pages-3-4") != path

    def test_release_immediately(self, manager):
        """release() without a delay deletes now."""
        staged = manager.stage(b"data")
        manager.release(staged.path)
        assert not staged.path.exists()

    def test_release_missing_file_is_quiet(self, manager):
        """Releasing an already deleted file is not an error."""
        manager.release(manager.processed_dir / "gone.pdf")
        assert manager.discard(manager.processed_dir / "gone.pdf") is False

    def test_release_after_delay(self, manager, fake_clock):
        """Deferred release waits for the grace delay."""
        staged = manager.stage(b"data")
        manager.release(staged.path, after_delay=30)
        fake_clock.advance(29)
        manager.scheduler.run_due()
        assert staged.path.exists()
        fake_clock.advance(2)
        manager.scheduler.run_due()
        assert not staged.path.exists()

    def test_deferred_release_of_vanished_file(self, manager, fake_clock):
        """A file removed before its deferred release is fine."""
        staged = manager.stage(b"data")
        manager.release(staged.path, after_delay=5)
        staged.path.unlink()
        fake_clock.advance(10)
        assert manager.scheduler.run_due() == 1

    def test_tracker_cleans_up_on_error(self, manager, staged_files):
        """Tracked files are deleted when the block raises."""
        with pytest.raises(ValueError, match="original"):
            with manager.track() as tracker:
                for label in ("a", "b"):
                    tracker.add(manager.artifact_path("part", label)).write_bytes(b"x")
                raise ValueError("original")
        assert staged_files(manager) == []

    def test_tracker_keeps_files_on_success(self, manager):
        """Tracked files survive a successful block."""
        with manager.track() as tracker:
            path = tracker.add(manager.artifact_path("merged"))
            path.write_bytes(b"x")
        assert path.exists()

    def test_tracker_forget(self, manager):
        """Forgotten paths are not cleaned up."""
        with pytest.raises(RuntimeError):
            with manager.track() as tracker:
                path = tracker.add(manager.artifact_path("keep"))
                path.write_bytes(b"x")
                tracker.forget(path)
                raise RuntimeError("fail")
        assert path.exists()

    def test_sweep_removes_only_stale_files(self, manager):
        """Sweep deletes files older than the retention threshold."""
        old_upload = manager.stage(b"old").path
        old_output = manager.artifact_path("merged")
        old_output.write_bytes(b"old")
        fresh = manager.stage(b"fresh").path
        _age(old_upload, 7200)
        _age(old_output, 3601 + 60)

        assert manager.sweep() == 2
        assert not old_upload.exists()
        assert not old_output.exists()
        assert fresh.exists()

    def test_sweep_custom_retention(self, manager):
        """An explicit retention overrides the default."""
        path = manager.stage(b"x").path
        _age(path, 120)
        assert manager.sweep(retention=3600) == 0
        assert manager.sweep(retention=60) == 1

    def test_sweep_ignores_directories(self, manager):
        """Subdirectories are left alone."""
        nested = manager.processed_dir / "nested"
        nested.mkdir()
        _age(nested, 7200)
        assert manager.sweep() == 0
        assert nested.is_dir()

    def test_sweep_tolerates_vanishing_files(self, manager, monkeypatch: pytest.MonkeyPatch):
        """Files deleted between scan and delete count as already cleaned."""
        path = manager.stage(b"x").path
        _age(path, 7200)
        real_discard = manager.discard

        def racing_discard(target):
            Path(target).unlink(missing_ok=True)
            return real_discard(target)

        monkeypatch.setattr(manager, "discard", racing_discard)
        assert manager.sweep() == 0
        assert not path.exists()

    def test_sweep_missing_directory(self, manager):
        """A managed directory deleted externally is skipped."""
        manager.uploads_dir.rmdir()
        assert manager.sweep() == 0

    def test_sweep_uses_wall_clock(self, tmp_path: Path):
        """Age is measured against the injected wall clock."""
        manager = FileLifecycleManager(tmp_path / "s", wall_clock=lambda: time.time() + 7200)
        path = manager.stage(b"x").path
        assert manager.sweep() == 1
        assert not path.exists()

    def test_from_settings(self, settings):
        """Settings configure the manager."""
        manager = FileLifecycleManager.from_settings(settings)
        assert manager.root == settings.staging_dir
        assert manager.grace_delay == settings.grace_delay
        assert manager.retention == settings.retention

    def test_start_and_stop(self, tmp_path: Path):
        """Background threads start explicitly and stop on request."""
        manager = FileLifecycleManager(tmp_path / "s", sweep_interval=0.05, wall_clock=lambda: time.time() + 7200)
        path = manager.stage(b"x").path
        manager.start()
        try:
            assert manager.running
            deadline = time.time() + 5
            while path.exists() and time.time() < deadline:
                time.sleep(0.02)
            assert not path.exists()
        finally:
            manager.stop()
        assert not manager.running

    def test_stop_flushes_pending_releases(self, tmp_path: Path):
        """stop(flush_pending=True) runs queued deletions immediately."""
        with FileLifecycleManager(tmp_path / "s") as manager:
            path = manager.stage(b"x").path
            manager.release(path, after_delay=3600)
            assert path.exists()
        assert not path.exists()


class TestBackgroundCleanup:
    """Tests for the process-wide cleanup helpers."""

    def test_nothing_runs_on_import(self):
        """No background manager exists until one is started."""
        assert lifecycle.get_background_manager() is None

    def test_start_and_stop(self, tmp_path: Path):
        """start_background_cleanup registers and starts the manager."""
        manager = FileLifecycleManager(tmp_path / "s")
        try:
            assert lifecycle.start_background_cleanup(manager) is manager
            assert lifecycle.get_background_manager() is manager
            assert manager.running
        finally:
            lifecycle.stop_background_cleanup()
        assert lifecycle.get_background_manager() is None
        assert not manager.running

    def test_restart_replaces_previous_manager(self, tmp_path: Path):
        """Starting a second manager stops the first."""
        first = FileLifecycleManager(tmp_path / "one")
        second = FileLifecycleManager(tmp_path / "two")
        try:
            lifecycle.start_background_cleanup(first)
            lifecycle.start_background_cleanup(second)
            assert not first.running
            assert lifecycle.get_background_manager() is second
        finally:
            lifecycle.stop_background_cleanup()
