#!/usr/bin/env python3
"""Package initialization and public API for pdfforge.

This module exports the public API for the pdfforge package, making it usable
as a library behind an HTTP layer, as an async service, and as a CLI tool.

Public API:
    # Core operations (blocking)
    parse_page_selection(expression, total_pages) -> List[int]
    split_pdf(input_path, strategy, params, manager) -> List[SplitResult]
    merge_documents(source_paths, manager) -> Path
    rotate_pdf / watermark_pdf / sign_pdf / edit_pdf(input_path, output_path, ...) -> Path

    # Compression (async)
    compress_pdf(input_path, level_name, manager, ...) -> CompressionResult
    ghostscript_available(candidates) -> Optional[str]

    # Lifecycle
    FileLifecycleManager(root, ...)
    start_background_cleanup(manager) / stop_background_cleanup()

    # Service facade (async)
    PdfService(manager, settings).split/merge/compress/rotate/watermark/sign/edit

Usage as a library:
    ```python
    import asyncio
    from pdfforge import PdfService, SplitParams, start_background_cleanup, stop_background_cleanup

    service = PdfService.from_settings()
    start_background_cleanup(service.manager)  # runs deferred deletions and the sweep
    try:
        delivery = asyncio.run(service.split(pdf_bytes, "chunk", SplitParams(chunk_size=10)))
        stream(delivery.path, delivery.filename, delivery.media_type)
        delivery.complete()
    finally:
        stop_background_cleanup()
    ```

Usage as CLI:
    ```bash
    python -m pdfforge split document.pdf -s equal --parts 3
    pdfforge compress big.pdf -o small.pdf -l high
    ```
"""

from __future__ import annotations

from pdfforge.types import (
    __version__,
    COMPRESSION_PRESETS,
    DEFAULT_COMPRESSION_LEVEL,
    GHOSTSCRIPT_CANDIDATES,
    CompressionPreset,
    CompressionResult,
    LaunchOutcome,
    SplitParams,
    SplitResult,
    SplitStrategy,
    StagedFile,
)

from pdfforge.errors import (
    PdfForgeError,
    ValidationError,
    EmptySelectionError,
    SingleOrEmptyDocumentError,
    InvalidPartCountError,
    InvalidChunkSizeError,
    InvalidRotationError,
    CorruptSourceError,
    ExternalToolUnavailableError,
    CompressionFailedError,
    PartialWriteFailureError,
    StagingError,
    error_payload,
)

from pdfforge.selection import parse_page_selection
from pdfforge.document import Document
from pdfforge.lifecycle import (
    DelayQueue,
    FileLifecycleManager,
    start_background_cleanup,
    stop_background_cleanup,
)
from pdfforge.splitter import split_document, split_pdf
from pdfforge.merger import merge_documents
from pdfforge.compression import compress_pdf, ghostscript_available, resolve_preset
from pdfforge.overlay import edit_pdf, rotate_pdf, sign_pdf, watermark_pdf
from pdfforge.config import Settings, get_settings, reload_settings
from pdfforge.logging_config import setup_logging
from pdfforge.service import Delivery, PdfService

__all__ = [
    "__version__",
    # Types
    "COMPRESSION_PRESETS",
    "DEFAULT_COMPRESSION_LEVEL",
    "GHOSTSCRIPT_CANDIDATES",
    "CompressionPreset",
    "CompressionResult",
    "LaunchOutcome",
    "SplitParams",
    "SplitResult",
    "SplitStrategy",
    "StagedFile",
    # Errors
    "PdfForgeError",
    "ValidationError",
    "EmptySelectionError",
    "SingleOrEmptyDocumentError",
    "InvalidPartCountError",
    "InvalidChunkSizeError",
    "InvalidRotationError",
    "CorruptSourceError",
    "ExternalToolUnavailableError",
    "CompressionFailedError",
    "PartialWriteFailureError",
    "StagingError",
    "error_payload",
    # Operations
    "parse_page_selection",
    "Document",
    "split_document",
    "split_pdf",
    "merge_documents",
    "compress_pdf",
    "ghostscript_available",
    "resolve_preset",
    "rotate_pdf",
    "watermark_pdf",
    "sign_pdf",
    "edit_pdf",
    # Lifecycle
    "DelayQueue",
    "FileLifecycleManager",
    "start_background_cleanup",
    "stop_background_cleanup",
    # Service and configuration
    "Delivery",
    "PdfService",
    "Settings",
    "get_settings",
    "reload_settings",
    "setup_logging",
]
