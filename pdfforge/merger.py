#!/usr/bin/env python3
"""Document merging.

Sources are loaded in the order given and their pages appended, in each
source's own order, to one accumulating document. The output is serialized
only after every source has loaded, so a corrupt source leaves nothing
behind.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence, Union

from pdfforge.document import Document
from pdfforge.errors import PartialWriteFailureError, ValidationError
from pdfforge.lifecycle import FileLifecycleManager

logger = logging.getLogger(__name__)


def merge_documents(
    source_paths: Sequence[Union[str, Path]],
    manager: FileLifecycleManager,
) -> Path:
    """
    Merge PDFs into a single file in the staging area.

    Args:
        source_paths: PDF paths, in the order their pages should appear.
        manager: Lifecycle manager providing the output path.

    Returns:
        Path of the merged PDF.

    Raises:
        ValidationError: If no sources are given.
        CorruptSourceError: If any source fails to parse. Nothing is written.
        PartialWriteFailureError: If writing the merged file fails.
    """
    if not source_paths:
        raise ValidationError("At least one PDF is required to merge")

    merged = Document.create()
    for source_path in source_paths:
        with Document.open(source_path) as source:
            for page in source.copy_pages(range(source.page_count)):
                merged.add_page(page)
            logger.debug("Appended %d page(s) from %s", source.page_count, source.source)

    output_path = manager.artifact_path("merged")
    with manager.track() as tracker:
        tracker.add(output_path)
        try:
            merged.write(output_path)
        except Exception as e:
            raise PartialWriteFailureError(f"Failed to write merged PDF: {e}") from e

    logger.info("Merged %d PDF(s) into %s (%d pages)", len(source_paths), output_path.name, merged.page_count)
    return output_path
