#!/usr/bin/env python3
"""Async request-level orchestration.

PdfService is what a request handler (or the CLI) calls. Each operation:

1. stages the uploaded bytes under ``uploads/``;
2. runs the blocking PyPDF2/PyMuPDF work in a worker thread;
3. deletes the staged inputs as soon as the work finishes, success or not;
4. returns a Delivery naming the file to stream back.

The caller streams ``Delivery.path`` and then calls ``complete()``, which
schedules deletion of every artifact after the grace delay, or ``abort()``
if streaming failed, which deletes them at once. Anything the caller forgets
is reclaimed by the periodic sweep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Union

from pdfforge.compression import Launcher, compress_pdf
from pdfforge.config import Settings, get_settings
from pdfforge.errors import StagingError
from pdfforge.lifecycle import FileLifecycleManager
from pdfforge.merger import merge_documents
from pdfforge.overlay import edit_pdf, rotate_pdf, sign_pdf, watermark_pdf
from pdfforge.splitter import split_pdf
from pdfforge.types import CompressionResult, SplitParams, SplitResult, SplitStrategy, StagedFile
from pdfforge.utils import bundle_artifacts

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
ZIP_MEDIA_TYPE = "application/zip"


@dataclass
class Delivery:
    """A finished result, ready to stream.

    Attributes:
        path: File to send.
        filename: Download name for the file.
        media_type: MIME type of ``path``.
        artifacts: Every file this operation produced, ``path`` included.
        grace_delay: Seconds ``complete()`` waits before deleting artifacts.
        compression: Compression metrics, for compress operations.
        parts: Individual split outputs, for split operations.
    """

    path: Path
    filename: str
    media_type: str
    artifacts: List[Path]
    grace_delay: float
    manager: FileLifecycleManager = field(repr=False)
    compression: Optional[CompressionResult] = None
    parts: List[SplitResult] = field(default_factory=list)
    settled: bool = False

    def complete(self) -> None:
        """Schedule deletion of all artifacts after the grace delay."""
        if self.settled:
            return
        self.settled = True
        self.manager.release_all(self.artifacts, after_delay=self.grace_delay)

    def abort(self) -> None:
        """Delete all artifacts now."""
        if self.settled:
            return
        self.settled = True
        self.manager.release_all(self.artifacts)


class PdfService:
    """Async facade over staging, the PDF operations, and artifact release.

    Args:
        manager: Lifecycle manager owning the staging area.
        settings: Grace delays, Ghostscript candidates and default level.
            Defaults to ``get_settings()``.
        launcher: Subprocess launcher passed to the compression pipeline.
    """

    def __init__(
        self,
        manager: FileLifecycleManager,
        settings: Optional[Settings] = None,
        launcher: Optional[Launcher] = None,
    ) -> None:
        self.manager = manager
        self.settings = settings or get_settings()
        self.launcher = launcher

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PdfService":
        settings = settings or get_settings()
        return cls(FileLifecycleManager.from_settings(settings), settings)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _stage_all(self, uploads: Sequence[bytes]) -> List[StagedFile]:
        staged: List[StagedFile] = []
        try:
            for data in uploads:
                staged.append(self.manager.stage(data))
        except StagingError:
            self.manager.release_all(item.path for item in staged)
            raise
        return staged

    def _deliver(
        self,
        path: Path,
        filename: str,
        artifacts: Optional[List[Path]] = None,
        media_type: str = PDF_MEDIA_TYPE,
        grace_delay: Optional[float] = None,
        **extra: Any,
    ) -> Delivery:
        return Delivery(
            path=path,
            filename=filename,
            media_type=media_type,
            artifacts=artifacts or [path],
            grace_delay=self.settings.grace_delay if grace_delay is None else grace_delay,
            manager=self.manager,
            **extra,
        )

    async def _transform(
        self,
        upload: bytes,
        purpose: str,
        func: Callable[..., Path],
        *args: Any,
    ) -> Path:
        """Stage one upload, run ``func(input, output, *args)`` in a thread."""
        staged = self.manager.stage(upload)
        started = time.perf_counter()
        try:
            output_path = self.manager.artifact_path(purpose)
            with self.manager.track() as tracker:
                tracker.add(output_path)
                await asyncio.to_thread(func, staged.path, output_path, *args)
        finally:
            self.manager.release(staged.path)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s finished in %.0f ms",
            purpose,
            elapsed_ms,
            extra={"operation": purpose, "path": str(output_path), "duration_ms": round(elapsed_ms)},
        )
        return output_path

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def split(
        self,
        upload: bytes,
        strategy: Union[SplitStrategy, str] = SplitStrategy.INDIVIDUAL,
        params: Optional[SplitParams] = None,
        progress: bool = False,
    ) -> Delivery:
        """Split one PDF. Several outputs are bundled into a ZIP archive."""
        params = params or SplitParams()
        staged = self.manager.stage(upload)
        try:
            results = await asyncio.to_thread(split_pdf, staged.path, strategy, params, self.manager, not progress)
        finally:
            self.manager.release(staged.path)

        grace = self.settings.split_grace_delay
        if len(results) == 1:
            only = results[0]
            return self._deliver(only.path, only.display_name, grace_delay=grace, parts=results)

        part_paths = [result.path for result in results]
        zip_path = self.manager.artifact_path("split-pdf", suffix=".zip")
        try:
            await asyncio.to_thread(
                bundle_artifacts,
                [(result.path, result.display_name) for result in results],
                zip_path,
            )
        except Exception as e:
            self.manager.release_all(part_paths + [zip_path])
            if isinstance(e, OSError):
                raise StagingError(f"Failed to create zip archive: {e}") from e
            raise

        return self._deliver(
            zip_path,
            zip_path.name,
            artifacts=part_paths + [zip_path],
            media_type=ZIP_MEDIA_TYPE,
            grace_delay=grace,
            parts=results,
        )

    async def merge(self, uploads: Sequence[bytes]) -> Delivery:
        """Merge PDFs in the order given."""
        staged = self._stage_all(uploads)
        try:
            output_path = await asyncio.to_thread(
                merge_documents, [item.path for item in staged], self.manager
            )
        finally:
            self.manager.release_all(item.path for item in staged)
        return self._deliver(output_path, "merged.pdf")

    async def compress(self, upload: bytes, level: Optional[str] = None) -> Delivery:
        """Compress one PDF; the Delivery carries the CompressionResult."""
        staged = self.manager.stage(upload)
        try:
            result = await compress_pdf(
                staged.path,
                level or self.settings.default_compression_level,
                self.manager,
                candidates=self.settings.ghostscript_candidates,
                launcher=self.launcher,
            )
        finally:
            self.manager.release(staged.path)
        return self._deliver(result.output_path, "compressed.pdf", compression=result)

    async def rotate(self, upload: bytes, rotation: Any = 90) -> Delivery:
        output_path = await self._transform(upload, "rotated", rotate_pdf, rotation)
        return self._deliver(output_path, "rotated.pdf")

    async def watermark(self, upload: bytes, text: Optional[str] = None) -> Delivery:
        output_path = await self._transform(upload, "watermarked", watermark_pdf, text or "")
        return self._deliver(output_path, "watermarked.pdf")

    async def sign(
        self,
        upload: bytes,
        text: Optional[str] = None,
        x: float = 50,
        y: float = 50,
        page_number: int = 0,
    ) -> Delivery:
        output_path = await self._transform(upload, "signed", sign_pdf, text or "", x, y, page_number)
        return self._deliver(output_path, "signed.pdf")

    async def edit(
        self,
        upload: bytes,
        text: str,
        x: float = 50,
        y: float = 500,
        page_number: int = 0,
    ) -> Delivery:
        output_path = await self._transform(upload, "edited", edit_pdf, text, x, y, page_number)
        return self._deliver(output_path, "edited.pdf")
