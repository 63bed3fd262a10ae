#!/usr/bin/env python3
"""PDF compression with Ghostscript and a verified structural fallback.

Pipeline:
    1. The input must parse as a PDF (CorruptSourceError otherwise).
    2. Primary path: Ghostscript downsamples and re-encodes images according
       to the preset, writing to a temporary file. Candidate executables are
       tried in order until one launches and exits 0.
    3. Verification gate: the temporary output must be non-empty, carry a
       %PDF signature, and parse with PyPDF2. Only then is it renamed into
       place.
    4. Fallback: a lossless structural re-save through PyPDF2 (no
       rasterization, no downsampling).

A failed primary path is not an error; it is reported as
``used_external_tool=False``. Only a corrupt input or a failed fallback
raises.

Presets (level -> DPI, JPEG quality, Ghostscript profile):
    low     150 DPI, Q85, /ebook     largest output, least loss
    medium  120 DPI, Q65, /printer   balanced (default)
    high     96 DPI, Q50, /screen    smallest output, most loss
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set, Union

from PyPDF2 import PdfReader

from pdfforge.document import Document
from pdfforge.errors import CompressionFailedError, CorruptSourceError, ExternalToolUnavailableError
from pdfforge.lifecycle import FileLifecycleManager
from pdfforge.types import (
    COMPRESSION_PRESETS,
    DEFAULT_COMPRESSION_LEVEL,
    GHOSTSCRIPT_CANDIDATES,
    CompressionPreset,
    CompressionResult,
    LaunchOutcome,
)
from pdfforge.utils import has_pdf_signature

logger = logging.getLogger(__name__)

Launcher = Callable[..., Awaitable[Any]]

# Strong references to reaper tasks so they are not garbage collected.
_reapers: Set["asyncio.Task[None]"] = set()


# ============================================================================
# PRESETS AND ARGUMENTS
# ============================================================================


def resolve_preset(level_name: Optional[str]) -> CompressionPreset:
    """Map a level name to its preset (case-insensitive, default "medium")."""
    level = (level_name or "").strip().lower()
    return COMPRESSION_PRESETS.get(level, COMPRESSION_PRESETS[DEFAULT_COMPRESSION_LEVEL])


def build_ghostscript_args(preset: CompressionPreset, input_path: Path, output_path: Path) -> List[str]:
    """Ghostscript arguments (without the executable) for one compression run."""
    dpi = preset.target_dpi
    return [
        "-sDEVICE=pdfwrite",
        "-dCompatibilityLevel=1.4",
        "-dNOPAUSE",
        "-dBATCH",
        "-dQUIET",
        f"-dPDFSETTINGS={preset.structural_profile}",
        # Drop duplicate resources and unused glyphs
        "-dDetectDuplicateImages=true",
        "-dCompressFonts=true",
        "-dSubsetFonts=true",
        # Image downsampling and re-encoding
        "-dDownsampleColorImages=true",
        "-dColorImageDownsampleType=/Average",
        f"-dColorImageResolution={dpi}",
        "-dDownsampleGrayImages=true",
        "-dGrayImageDownsampleType=/Average",
        f"-dGrayImageResolution={dpi}",
        "-dDownsampleMonoImages=true",
        "-dMonoImageDownsampleType=/Subsample",
        f"-dMonoImageResolution={dpi}",
        "-dEncodeColorImages=true",
        "-dEncodeGrayImages=true",
        "-dEncodeMonoImages=true",
        f"-dJPEGQ={preset.image_quality}",
        "-dAutoRotatePages=/None",
        f"-sOutputFile={output_path}",
        str(input_path),
    ]


def ghostscript_available(candidates: Sequence[str] = GHOSTSCRIPT_CANDIDATES) -> Optional[str]:
    """Return the first candidate found on PATH, or None."""
    for name in candidates:
        if shutil.which(name):
            return name
    return None


# ============================================================================
# CANDIDATE CHAIN
# ============================================================================


async def _reap(process: Any, on_exit: Callable[[], Any]) -> None:
    try:
        await process.wait()
    finally:
        on_exit()


async def launch_candidate(
    executable: str,
    args: Sequence[str],
    launcher: Optional[Launcher] = None,
    on_abandon: Optional[Callable[[], Any]] = None,
) -> LaunchOutcome:
    """
    Run one executable to completion without blocking the event loop.

    If the awaiting task is cancelled the process is left to finish on its
    own; ``on_abandon`` runs once it exits (used to delete its output).
    """
    launch = launcher or asyncio.create_subprocess_exec
    try:
        process = await launch(
            executable,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return LaunchOutcome(executable=executable, launched=False, stderr=str(e))

    try:
        _, stderr = await process.communicate()
    except asyncio.CancelledError:
        if on_abandon is not None:
            task = asyncio.ensure_future(_reap(process, on_abandon))
            _reapers.add(task)
            task.add_done_callback(_reapers.discard)
        raise

    text = (stderr or b"").decode("utf-8", errors="replace").strip()
    return LaunchOutcome(executable=executable, launched=True, returncode=process.returncode, stderr=text)


async def run_candidates(
    candidates: Sequence[str],
    args: Sequence[str],
    launcher: Optional[Launcher] = None,
    on_abandon: Optional[Callable[[], Any]] = None,
) -> LaunchOutcome:
    """
    Try each candidate executable in order until one exits with status 0.

    Raises:
        ExternalToolUnavailableError: If every candidate failed to launch or
            exited non-zero. ``attempts`` holds each LaunchOutcome.
    """
    attempts: List[LaunchOutcome] = []
    for executable in candidates:
        outcome = await launch_candidate(executable, args, launcher, on_abandon)
        attempts.append(outcome)
        if outcome.ok:
            return outcome
        logger.debug(
            "Ghostscript candidate failed: %s %s",
            outcome.reason,
            outcome.stderr[-500:],
            extra={"executable": executable},
        )
    raise ExternalToolUnavailableError(
        f"No Ghostscript candidate succeeded (tried {', '.join(candidates) or 'none'})",
        attempts=attempts,
    )


# ============================================================================
# VERIFICATION AND FALLBACK
# ============================================================================


def verify_pdf(path: Union[str, Path]) -> bool:
    """
    Check that ``path`` is a structurally valid PDF.

    The file must exist, be non-empty, carry a %PDF signature near its start,
    and parse with PyPDF2 exposing at least one page.
    """
    path = Path(path)
    try:
        if not path.is_file() or path.stat().st_size == 0:
            return False
    except OSError:
        return False
    if not has_pdf_signature(path):
        return False
    try:
        reader = PdfReader(str(path), strict=False)
        return len(reader.pages) > 0
    except Exception as e:
        logger.debug("Verification parse of %s failed: %s", path.name, e)
        return False


def structural_resave(input_path: Path, output_path: Path) -> int:
    """Lossless re-save of ``input_path`` to ``output_path``. Returns bytes written."""
    with Document.open(input_path) as document:
        return document.write(output_path, compress=True)


def _check_source(input_path: Path) -> int:
    if not has_pdf_signature(input_path):
        raise CorruptSourceError(
            f"Not a PDF file: '{input_path.name}' has no %PDF header",
            details={"source": str(input_path)},
        )
    with Document.open(input_path) as document:
        return document.page_count


def reduction_percent(original_size: int, compressed_size: int) -> float:
    """Percentage saved, floored at zero, rounded to 2 decimals."""
    if original_size <= 0:
        return 0.0
    reduced = max(0, original_size - compressed_size)
    return round(reduced * 100 / original_size, 2)


# ============================================================================
# PIPELINE
# ============================================================================


async def compress_pdf(
    input_path: Union[str, Path],
    level_name: Optional[str],
    manager: FileLifecycleManager,
    candidates: Sequence[str] = GHOSTSCRIPT_CANDIDATES,
    launcher: Optional[Launcher] = None,
) -> CompressionResult:
    """
    Compress a PDF into the staging area.

    Args:
        input_path: Staged input PDF. It is not modified or deleted.
        level_name: "low", "medium" or "high" (case-insensitive). Anything
            else means "medium".
        manager: Lifecycle manager providing output and temporary paths.
        candidates: Ghostscript executable names, tried in order.
        launcher: Replacement for ``asyncio.create_subprocess_exec``.

    Returns:
        CompressionResult describing the single committed output file.

    Raises:
        CorruptSourceError: If the input is not a valid PDF.
        CompressionFailedError: If the fallback re-save also failed.
    """
    input_path = Path(input_path)
    preset = resolve_preset(level_name)

    page_count = await asyncio.to_thread(_check_source, input_path)
    original_size = input_path.stat().st_size

    logger.info(
        "Compressing %s (%d pages, %d bytes) with level %s",
        input_path.name,
        page_count,
        original_size,
        preset.name,
        extra={"operation": "compress", "path": str(input_path), "compression_level": preset.name},
    )

    output_path = manager.artifact_path("compressed")
    tmp_path = manager.artifact_path("tmp-compressed")
    executable: Optional[str] = None

    with manager.track() as tracker:
        tracker.add(output_path)
        try:
            outcome = await run_candidates(
                candidates,
                build_ghostscript_args(preset, input_path, tmp_path),
                launcher=launcher,
                on_abandon=lambda: manager.discard(tmp_path),
            )
            if await asyncio.to_thread(verify_pdf, tmp_path):
                os.replace(tmp_path, output_path)
                executable = outcome.executable
            else:
                logger.warning("%s produced an invalid PDF, using structural fallback", outcome.executable)
        except ExternalToolUnavailableError as e:
            logger.warning("Ghostscript unavailable, using structural fallback: %s", e.message)
        finally:
            manager.discard(tmp_path)

        if executable is None:
            try:
                await asyncio.to_thread(structural_resave, input_path, output_path)
            except Exception as e:
                raise CompressionFailedError(f"Failed to compress PDF: {e}") from e
            if not output_path.is_file():
                raise CompressionFailedError("Fallback compression produced no output")

    compressed_size = output_path.stat().st_size
    result = CompressionResult(
        output_path=output_path,
        original_size=original_size,
        compressed_size=compressed_size,
        reduction_percent=reduction_percent(original_size, compressed_size),
        used_external_tool=executable is not None,
        level=preset.name,
        executable=executable,
    )
    logger.info(
        "Compressed %s: %d -> %d bytes (%.2f%% reduction, %s)",
        input_path.name,
        original_size,
        compressed_size,
        result.reduction_percent,
        executable or "structural fallback",
        extra={"operation": "compress", "executable": executable, "compression_level": preset.name},
    )
    return result
