#!/usr/bin/env python3
"""Temporary-file lifecycle management.

The FileLifecycleManager owns a staging root with two managed directories:

    <root>/uploads     staged inputs
    <root>/processed   generated artifacts

Every file the pipeline creates is reclaimed by one of three routes:

1. Immediately, through ``release(path)`` or an ArtifactTracker unwinding a
   failed operation.
2. After a grace delay, through ``release(path, after_delay=...)``. Delays are
   held in a DelayQueue so the response can finish streaming first.
3. By the periodic sweep, which deletes anything older than the retention
   threshold. This is the backstop for any file whose deferred deletion was
   lost (process restart, bug).

Threading:
    Nothing runs on import. ``start()`` launches two daemon threads, one
    draining the DelayQueue and one running the sweep on a fixed interval;
    ``stop()`` joins them. Tests drive the DelayQueue with a fake clock and
    call ``run_due()`` instead of starting threads.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import shutil
import stat
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Union

from pdfforge.errors import StagingError
from pdfforge.types import (
    DEFAULT_GRACE_DELAY_SECONDS,
    DEFAULT_RETENTION_SECONDS,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    PROCESSED_DIRNAME,
    UPLOADS_DIRNAME,
    StagedFile,
)
from pdfforge.utils import make_artifact_name, safe_unlink

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Upper bound on how long the scheduler thread sleeps, so stop() is prompt
# even when the next task is far away.
_MAX_IDLE_WAIT = 1.0


# ============================================================================
# DELAY QUEUE
# ============================================================================


@dataclass(order=True)
class ScheduledTask:
    due: float
    seq: int
    callback: Callable[..., Any] = field(compare=False)
    args: tuple = field(default=(), compare=False)
    cancelled: bool = field(default=False, compare=False)


class DelayQueue:
    """Deferred callbacks ordered by due time.

    Args:
        clock: Monotonic time source. Tests pass a fake clock and advance it.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._heap: List[ScheduledTask] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()
        self._wakeup = threading.Event()
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def schedule(self, delay: float, callback: Callable[..., Any], *args: Any) -> ScheduledTask:
        task = ScheduledTask(self._clock() + max(0.0, delay), next(self._seq), callback, args)
        with self._lock:
            heapq.heappush(self._heap, task)
        self._wakeup.set()
        return task

    def cancel(self, task: ScheduledTask) -> None:
        task.cancelled = True

    @property
    def pending(self) -> int:
        with self._lock:
            return sum(1 for task in self._heap if not task.cancelled)

    def next_due(self) -> Optional[float]:
        with self._lock:
            while self._heap and self._heap[0].cancelled:
                heapq.heappop(self._heap)
            return self._heap[0].due if self._heap else None

    def run_due(self, now: Optional[float] = None) -> int:
        """Run every task whose due time has passed. Returns how many ran."""
        current = self._clock() if now is None else now
        due: List[ScheduledTask] = []
        with self._lock:
            while self._heap and self._heap[0].due <= current:
                task = heapq.heappop(self._heap)
                if not task.cancelled:
                    due.append(task)
        for task in due:
            self._invoke(task)
        return len(due)

    def flush(self) -> int:
        """Run every pending task now, regardless of due time."""
        with self._lock:
            tasks = [task for task in sorted(self._heap) if not task.cancelled]
            self._heap.clear()
        for task in tasks:
            self._invoke(task)
        return len(tasks)

    @staticmethod
    def _invoke(task: ScheduledTask) -> None:
        try:
            task.callback(*task.args)
        except Exception:
            logger.exception("Scheduled task %r failed", getattr(task.callback, "__name__", task.callback))

    # ------------------------------------------------------------------
    # Background runner
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name="pdfforge-delay-queue", daemon=True)
        self._thread.start()

    def stop(self, flush: bool = False) -> None:
        self._stopping.set()
        self._wakeup.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        if flush:
            self.flush()

    def _run(self) -> None:
        while not self._stopping.is_set():
            self.run_due()
            next_due = self.next_due()
            timeout = _MAX_IDLE_WAIT
            if next_due is not None:
                timeout = min(_MAX_IDLE_WAIT, max(0.0, next_due - self._clock()))
            self._wakeup.wait(timeout)
            self._wakeup.clear()


# ============================================================================
# ARTIFACT TRACKER
# ============================================================================


class ArtifactTracker:
    """Registry of files created by one operation.

    Used as a context manager: if the block raises, every registered file is
    deleted and the original exception propagates unchanged. Cleanup
    failures are logged, never raised.
    """

    def __init__(self, manager: "FileLifecycleManager") -> None:
        self._manager = manager
        self.paths: List[Path] = []

    def add(self, path: PathLike) -> Path:
        path = Path(path)
        self.paths.append(path)
        return path

    def forget(self, path: PathLike) -> None:
        path = Path(path)
        self.paths = [p for p in self.paths if p != path]

    def cleanup(self) -> int:
        removed = 0
        for path in reversed(self.paths):
            if self._manager.discard(path):
                removed += 1
        self.paths.clear()
        return removed

    def __enter__(self) -> "ArtifactTracker":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> bool:
        if exc_type is not None:
            removed = self.cleanup()
            if removed:
                logger.info("Removed %d partial artifact(s) after %s", removed, exc_type.__name__)
        return False


# ============================================================================
# LIFECYCLE MANAGER
# ============================================================================


class FileLifecycleManager:
    """Owns the staging area and the deletion of everything in it.

    Args:
        root: Staging root. ``uploads/`` and ``processed/`` are created inside.
        grace_delay: Default delay before released artifacts are deleted.
        retention: Age in seconds after which the sweep deletes a file.
        sweep_interval: Seconds between background sweeps.
        scheduler: DelayQueue for deferred deletion; one is created if omitted.
        wall_clock: Time source compared against file mtimes.
    """

    def __init__(
        self,
        root: PathLike,
        *,
        grace_delay: float = DEFAULT_GRACE_DELAY_SECONDS,
        retention: float = DEFAULT_RETENTION_SECONDS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        scheduler: Optional[DelayQueue] = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = Path(root)
        self.uploads_dir = self.root / UPLOADS_DIRNAME
        self.processed_dir = self.root / PROCESSED_DIRNAME
        self.grace_delay = grace_delay
        self.retention = retention
        self.sweep_interval = sweep_interval
        self.scheduler = scheduler or DelayQueue()
        self._wall_clock = wall_clock
        self._sweep_stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

        try:
            self.uploads_dir.mkdir(parents=True, exist_ok=True)
            self.processed_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StagingError(f"Cannot create staging directories under {self.root}: {e}") from e

    @classmethod
    def from_settings(cls, settings: Any) -> "FileLifecycleManager":
        return cls(
            settings.staging_dir,
            grace_delay=settings.grace_delay,
            retention=settings.retention,
            sweep_interval=settings.sweep_interval,
        )

    @property
    def directories(self) -> List[Path]:
        return [self.uploads_dir, self.processed_dir]

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def stage(self, data: bytes, purpose: str = "upload", suffix: str = ".pdf") -> StagedFile:
        """Write uploaded bytes into ``uploads/`` under a unique name."""
        path = self.uploads_dir / make_artifact_name(purpose, None, suffix)
        try:
            path.write_bytes(data)
        except OSError as e:
            self.discard(path)
            raise StagingError(f"Failed to stage upload: {e}", details={"path": str(path)}) from e
        logger.debug("Staged %s (%d bytes)", path.name, len(data))
        return StagedFile(path=path, purpose=purpose)

    def stage_file(self, source: PathLike, purpose: str = "upload") -> StagedFile:
        """Copy an existing file into ``uploads/``."""
        source = Path(source)
        path = self.uploads_dir / make_artifact_name(purpose, None, source.suffix or ".pdf")
        try:
            shutil.copyfile(source, path)
        except OSError as e:
            self.discard(path)
            raise StagingError(f"Failed to stage {source.name}: {e}", details={"path": str(source)}) from e
        return StagedFile(path=path, purpose=purpose)

    def artifact_path(self, purpose: str, label: Union[str, int, None] = None, suffix: str = ".pdf") -> Path:
        """Derive a unique output path in ``processed/``."""
        return self.processed_dir / make_artifact_name(purpose, label, suffix)

    def track(self) -> ArtifactTracker:
        return ArtifactTracker(self)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def discard(self, path: PathLike) -> bool:
        """Delete a file now. Never raises; failures are logged.

        Returns:
            True if this call removed the file.
        """
        try:
            removed = safe_unlink(path)
        except OSError as e:
            logger.error("Error cleaning up file %s: %s", path, e)
            return False
        if removed:
            logger.debug("Cleaned up file: %s", path)
        return removed

    def release(self, path: PathLike, after_delay: Optional[float] = None) -> None:
        """Delete ``path`` now, or after ``after_delay`` seconds."""
        if not after_delay:
            self.discard(path)
            return
        self.scheduler.schedule(after_delay, self.discard, Path(path))
        logger.debug("Scheduled cleanup of %s in %.1fs", path, after_delay)

    def release_all(self, paths: Iterable[PathLike], after_delay: Optional[float] = None) -> None:
        for path in paths:
            self.release(path, after_delay)

    def sweep(self, retention: Optional[float] = None) -> int:
        """Delete managed files whose mtime is older than the retention threshold.

        Files that vanish between the directory scan and the delete (another
        request or a deferred release got there first) count as already
        cleaned.

        Returns:
            Number of files this sweep removed.
        """
        threshold = self.retention if retention is None else retention
        now = self._wall_clock()
        removed = 0

        for directory in self.directories:
            try:
                entries = list(directory.iterdir())
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error("Error reading directory %s: %s", directory, e)
                continue

            for entry in entries:
                try:
                    info = entry.stat()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    logger.error("Error getting file stats for %s: %s", entry, e)
                    continue

                if not stat.S_ISREG(info.st_mode):
                    continue
                if now - info.st_mtime > threshold and self.discard(entry):
                    removed += 1

        if removed:
            logger.info("Sweep removed %d stale file(s) from %s", removed, self.root)
        return removed

    # ------------------------------------------------------------------
    # Background lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def start(self) -> None:
        """Start deferred-release processing and the periodic sweep."""
        self.scheduler.start()
        if self.running:
            return
        self._sweep_stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="pdfforge-sweeper", daemon=True)
        self._sweeper.start()
        logger.info(
            "Started staging cleanup for %s (sweep every %.0fs, retention %.0fs)",
            self.root,
            self.sweep_interval,
            self.retention,
        )

    def stop(self, flush_pending: bool = False) -> None:
        """Stop background threads. ``flush_pending`` runs queued releases now."""
        self._sweep_stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5.0)
            self._sweeper = None
        self.scheduler.stop(flush=flush_pending)

    def _sweep_loop(self) -> None:
        while not self._sweep_stop.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Periodic sweep of %s failed", self.root)

    def __enter__(self) -> "FileLifecycleManager":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop(flush_pending=True)


# ============================================================================
# PROCESS-WIDE BACKGROUND CLEANUP
# ============================================================================

_background_manager: Optional[FileLifecycleManager] = None
_background_lock = threading.Lock()


def start_background_cleanup(manager: FileLifecycleManager) -> FileLifecycleManager:
    """Start the process-wide sweep for ``manager``. Call at service startup."""
    global _background_manager
    with _background_lock:
        if _background_manager is not None and _background_manager is not manager:
            _background_manager.stop()
        manager.start()
        _background_manager = manager
    return manager


def stop_background_cleanup(flush_pending: bool = True) -> None:
    """Stop the process-wide sweep. Call at service shutdown."""
    global _background_manager
    with _background_lock:
        if _background_manager is not None:
            _background_manager.stop(flush_pending=flush_pending)
            _background_manager = None


def get_background_manager() -> Optional[FileLifecycleManager]:
    return _background_manager
