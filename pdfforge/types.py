#!/usr/bin/env python3
"""Shared types, constants, and value objects for the pdfforge package.

This module contains the dataclasses and constants used throughout pdfforge.
Centralizing them keeps the splitter, compressor, lifecycle manager, and CLI
in agreement about names, defaults, and result shapes.

Value Objects:
    CompressionPreset: Ghostscript resolution / quality / profile bundle
    CompressionResult: Outcome of a compression run
    SplitResult: One produced sub-document of a split
    SplitParams: Parameters for the split strategies
    StagedFile: A file materialized in the managed staging area
    LaunchOutcome: Result of one external tool launch attempt

Constants:
    __version__: Package version string
    DEFAULT_OUTPUT_DIR: Default CLI output directory name
    DEFAULT_STAGING_DIR: Default staging root name
    GHOSTSCRIPT_CANDIDATES: Executable names tried in order
    COMPRESSION_PRESETS: Fixed low/medium/high preset table
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple

# ============================================================================
# VERSION AND METADATA
# ============================================================================

__version__ = "1.0.0"

# ============================================================================
# OUTPUT AND STAGING CONFIGURATION
# ============================================================================

DEFAULT_OUTPUT_DIR: str = "pdf_out"
DEFAULT_STAGING_DIR: str = "pdfforge_staging"

UPLOADS_DIRNAME: str = "uploads"
PROCESSED_DIRNAME: str = "processed"

DEFAULT_RETENTION_SECONDS: float = 60 * 60  # orphaned files older than one hour
DEFAULT_SWEEP_INTERVAL_SECONDS: float = 60 * 60
DEFAULT_GRACE_DELAY_SECONDS: float = 30.0
DEFAULT_SPLIT_GRACE_DELAY_SECONDS: float = 5.0

# Bytes inspected when looking for the %PDF signature. Some generators put a
# short preamble before the header.
PDF_SIGNATURE: bytes = b"%PDF"
SIGNATURE_SCAN_BYTES: int = 1024

# ============================================================================
# COMPRESSION
# ============================================================================

# Windows console builds first, then the POSIX name.
GHOSTSCRIPT_CANDIDATES: Tuple[str, ...] = ("gswin64c", "gswin32c", "gs")

DEFAULT_COMPRESSION_LEVEL: str = "medium"


@dataclass(frozen=True)
class CompressionPreset:
    """Named bundle of compression parameters.

    Attributes:
        name: Level name ("low", "medium", "high").
        target_dpi: Downsample resolution for colour, gray and mono images.
        image_quality: JPEG quality, 0-100.
        structural_profile: Ghostscript -dPDFSETTINGS profile.
    """

    name: str
    target_dpi: int
    image_quality: int
    structural_profile: str


# low = largest output / least loss, high = smallest output / most loss
COMPRESSION_PRESETS: Dict[str, CompressionPreset] = {
    "low": CompressionPreset("low", 150, 85, "/ebook"),
    "medium": CompressionPreset("medium", 120, 65, "/printer"),
    "high": CompressionPreset("high", 96, 50, "/screen"),
}


@dataclass(frozen=True)
class LaunchOutcome:
    """Result of launching one candidate executable.

    ``launched`` is False when the executable could not be started at all
    (not on PATH, not executable). ``returncode`` is None in that case.
    """

    executable: str
    launched: bool
    returncode: Optional[int] = None
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.launched and self.returncode == 0

    @property
    def reason(self) -> str:
        if not self.launched:
            return f"{self.executable}: could not be launched ({self.stderr or 'not found'})"
        if self.returncode != 0:
            return f"{self.executable}: exited with status {self.returncode}"
        return f"{self.executable}: ok"


@dataclass(frozen=True)
class CompressionResult:
    output_path: Path
    original_size: int
    compressed_size: int
    reduction_percent: float
    used_external_tool: bool
    level: str
    executable: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        from pdfforge.utils import format_bytes

        return {
            "output_path": str(self.output_path),
            "used_external_tool": self.used_external_tool,
            "compression_level": self.level,
            "original_size_bytes": self.original_size,
            "original_size_formatted": format_bytes(self.original_size),
            "compressed_size_bytes": self.compressed_size,
            "compressed_size_formatted": format_bytes(self.compressed_size),
            "reduction_percent": self.reduction_percent,
        }


# ============================================================================
# SPLITTING
# ============================================================================


class SplitStrategy(str, enum.Enum):
    INDIVIDUAL = "individual"
    SELECTED = "selected"
    EQUAL = "equal"
    CHUNK = "chunk"

    @classmethod
    def from_name(cls, name: Optional[str]) -> "SplitStrategy":
        """Resolve a strategy name, defaulting to INDIVIDUAL for unknown names."""
        normalized = (name or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.INDIVIDUAL


@dataclass
class SplitParams:
    pages: Optional[str] = None
    parts: int = 2
    chunk_size: int = 2


@dataclass(frozen=True)
class SplitResult:
    """One sub-document produced by a split.

    Attributes:
        path: Location of the written PDF in the staging area.
        display_name: File name shown to the user (basename of path).
        page_range_label: Human-readable covered pages, e.g. "4-6" or "3, 1, 2".
        sequence_number: 1-based position of this output in the split.
        pages: The 1-based source pages, in output order.
    """

    path: Path
    display_name: str
    page_range_label: str
    sequence_number: int
    pages: Tuple[int, ...] = ()


# ============================================================================
# STAGING
# ============================================================================


@dataclass(frozen=True)
class StagedFile:
    path: Path
    purpose: str
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def name(self) -> str:
        return self.path.name
