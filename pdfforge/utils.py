#!/usr/bin/env python3
"""Utility functions for the pdfforge package.

Small, self-contained helpers shared by the pipeline and the CLI:
- Artifact naming (``<purpose>-<label>-<timestamp>.<ext>``)
- PDF signature sniffing
- Human-readable byte sizes
- ZIP bundling of multi-file results
- Input path expansion for the CLI

Functions:
    make_artifact_name: Build a collision-resistant artifact file name
    has_pdf_signature: Check for a %PDF header near the start of a file
    format_bytes: Format a byte count as "1.50 MB"
    bundle_artifacts: Pack several files into one ZIP archive
    process_inputs: Expand files/directories into a list of PDF paths
"""

from __future__ import annotations

import logging
import re
import secrets
import sys
import time
import zipfile
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from pdfforge.types import PDF_SIGNATURE, SIGNATURE_SCAN_BYTES

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def timestamp_token() -> str:
    """Millisecond timestamp plus a short random suffix.

    Two requests landing in the same millisecond still get distinct tokens.
    """
    return f"{int(time.time() * 1000)}{secrets.token_hex(3)}"


def make_artifact_name(purpose: str, label: Union[str, int, None] = None, suffix: str = ".pdf") -> str:
    """Build an artifact file name following ``<purpose>-<label>-<timestamp><suffix>``.

    Args:
        purpose: What produced the file ("part", "chunk", "merged", ...).
        label: Sequence number and/or page range, e.g. "2-pages-4-6". Omitted
            from the name when empty.
        suffix: File extension including the dot.

    Returns:
        A file name safe to place in the staging directory.

    Examples:
        >>> make_artifact_name("page", 3)  # doctest: +SKIP
        'page-3-1760870000000a1b2c3.pdf'
    """
    pieces = [purpose]
    if label not in (None, ""):
        pieces.append(str(label))
    pieces.append(timestamp_token())
    stem = "-".join(_UNSAFE_NAME_CHARS.sub("_", piece) for piece in pieces)
    return f"{stem}{suffix}"


def has_pdf_signature(path: Union[str, Path]) -> bool:
    """Return True if ``%PDF`` appears within the first bytes of the file."""
    try:
        with open(path, "rb") as f:
            head = f.read(SIGNATURE_SCAN_BYTES)
    except OSError:
        return False
    return PDF_SIGNATURE in head


def format_bytes(size: int) -> str:
    """Format a byte count for display.

    Examples:
        >>> format_bytes(0)
        '0 B'
        >>> format_bytes(1536)
        '1.50 KB'
    """
    if size <= 0:
        return "0 B"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024.0 or unit == "GB":
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.2f} {unit}"
        value /= 1024.0
    return f"{value:.2f} GB"


def bundle_artifacts(
    entries: Sequence[Tuple[Path, str]],
    output_path: Path,
) -> Path:
    """Write files into a single deflate-compressed ZIP archive.

    Args:
        entries: (path on disk, name inside the archive) pairs, in order.
        output_path: Archive location.

    Returns:
        ``output_path``.

    Raises:
        OSError: If any entry cannot be read or the archive cannot be written.
        zipfile.LargeZipFile: If an entry needs ZIP64 and it is disabled.

    A partially written archive is removed before any error propagates.
    """
    try:
        with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            for path, arcname in entries:
                archive.write(path, arcname=arcname)
    except Exception:
        output_path.unlink(missing_ok=True)
        raise
    logger.info("Bundled %d files into %s", len(entries), output_path.name)
    return output_path


def process_inputs(inputs: List[str]) -> List[Path]:
    """
    Process input arguments - can be files or directories.

    Args:
        inputs: List of input paths (files or directories).

    Returns:
        List of PDF file paths to process, in argument order.
    """
    pdf_files: List[Path] = []

    for inp in inputs:
        path = Path(inp)
        if path.is_dir():
            # Case-insensitive glob avoids duplicates on case-insensitive filesystems
            pdf_files.extend(sorted(path.glob("*.[pP][dD][fF]")))
        elif path.is_file():
            if path.suffix.lower() == ".pdf":
                pdf_files.append(path)
            else:
                print(f"Warning: Skipping non-PDF file: {path}", file=sys.stderr)
        else:
            print(f"Warning: Path not found: {path}", file=sys.stderr)

    return pdf_files


def safe_unlink(path: Optional[Union[str, Path]]) -> bool:
    """Delete a file, treating an already-missing file as cleaned.

    Returns:
        True if this call removed the file.

    Raises:
        OSError: For failures other than the file being absent.
    """
    if path is None:
        return False
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False
