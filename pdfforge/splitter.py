#!/usr/bin/env python3
"""Document splitting.

Four strategies, all producing standalone PDFs in the staging area:

    individual  one output per page
    selected    one output holding a parsed page selection, in selection order
    equal       N parts of ceil(total / N) pages (the last may be shorter)
    chunk       fixed-size groups; the last holds the remainder

Page plans are computed by pure functions first, so every parameter error is
raised before a single file is written. Writing then happens under an
ArtifactTracker: if any page copy or write fails, every output already
written is deleted and PartialWriteFailureError is raised.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Sequence, Tuple, Union

from tqdm import tqdm

from pdfforge.document import Document
from pdfforge.errors import (
    InvalidChunkSizeError,
    InvalidPartCountError,
    PartialWriteFailureError,
    SingleOrEmptyDocumentError,
)
from pdfforge.lifecycle import FileLifecycleManager
from pdfforge.selection import parse_page_selection
from pdfforge.types import SplitParams, SplitResult, SplitStrategy

logger = logging.getLogger(__name__)

# Longest page list spelled out in a selected-pages file name.
MAX_LABEL_LENGTH = 60


@dataclass(frozen=True)
class PagePlan:
    """One output to produce: which pages, and how to name it."""

    purpose: str
    label: str
    page_range_label: str
    pages: Tuple[int, ...]


# ============================================================================
# PLANNING
# ============================================================================


def _coerce_int(value: Any, error_cls: type, what: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise error_cls(f"Invalid {what}: {value!r}. Must be a whole number.") from None


def plan_individual(total_pages: int) -> List[Tuple[int, int]]:
    """One (page, page) range per page."""
    return [(page, page) for page in range(1, total_pages + 1)]


def plan_equal_parts(total_pages: int, parts: Any) -> List[Tuple[int, int]]:
    """
    Split ``total_pages`` into ``parts`` ranges of ceil(total / parts) pages.

    When ceil rounding overshoots, trailing partitions would start past the
    last page and are omitted, so fewer than ``parts`` ranges can come back
    (7 pages in 5 parts gives 4 ranges of 2, 2, 2, 1).

    Raises:
        InvalidPartCountError: Unless 2 <= parts <= total_pages.
    """
    parts = _coerce_int(parts, InvalidPartCountError, "number of parts")
    if parts < 2 or parts > total_pages:
        raise InvalidPartCountError(
            f"Invalid number of parts: {parts}. Must be between 2 and {total_pages}",
            details={"parts": parts, "total_pages": total_pages},
        )

    per_part = math.ceil(total_pages / parts)
    ranges: List[Tuple[int, int]] = []
    for index in range(parts):
        start = index * per_part
        if start >= total_pages:
            break
        end = min(start + per_part, total_pages)
        ranges.append((start + 1, end))
    return ranges


def plan_chunks(total_pages: int, chunk_size: Any) -> List[Tuple[int, int]]:
    """
    Split ``total_pages`` into consecutive groups of ``chunk_size`` pages.

    Raises:
        InvalidChunkSizeError: Unless 1 <= chunk_size < total_pages.
    """
    size = _coerce_int(chunk_size, InvalidChunkSizeError, "chunk size")
    if size < 1 or size >= total_pages:
        raise InvalidChunkSizeError(
            f"Invalid chunk size: {size}. Must be between 1 and {total_pages - 1}",
            details={"chunk_size": size, "total_pages": total_pages},
        )

    ranges: List[Tuple[int, int]] = []
    start = 1
    while start <= total_pages:
        end = min(start + size - 1, total_pages)
        ranges.append((start, end))
        start = end + 1
    return ranges


def _compact_runs(pages: Sequence[int]) -> List[str]:
    """Collapse ascending consecutive runs: [1, 2, 3, 7, 5] -> ["1-3", "7", "5"]."""
    def fmt(start: int, end: int) -> str:
        return str(start) if start == end else f"{start}-{end}"

    runs: List[str] = []
    run_start = prev = pages[0]
    for page in pages[1:]:
        if page == prev + 1:
            prev = page
            continue
        runs.append(fmt(run_start, prev))
        run_start = prev = page
    runs.append(fmt(run_start, prev))
    return runs


def build_plans(total_pages: int, strategy: SplitStrategy, params: SplitParams) -> List[PagePlan]:
    """Resolve a strategy and its parameters into the outputs to write.

    Raises:
        SingleOrEmptyDocumentError: If the document has fewer than 2 pages.
        ValidationError subclasses: For bad parts, chunk size, or selection.
    """
    if total_pages < 2:
        raise SingleOrEmptyDocumentError(
            f"Cannot split PDF with only {total_pages} page{'s' if total_pages != 1 else ''}",
            details={"total_pages": total_pages},
        )

    if strategy is SplitStrategy.SELECTED and not (params.pages or "").strip():
        strategy = SplitStrategy.INDIVIDUAL

    if strategy is SplitStrategy.SELECTED:
        pages = parse_page_selection(params.pages, total_pages)
        runs = _compact_runs(pages)
        label = "_".join(runs)
        if len(label) > MAX_LABEL_LENGTH:
            label = f"{label[:MAX_LABEL_LENGTH].rstrip('_-')}_n{len(pages)}"
        return [PagePlan("split", f"pages-{label}", ", ".join(runs), tuple(pages))]

    if strategy is SplitStrategy.EQUAL:
        return [
            PagePlan("part", f"{seq}-pages-{start}-{end}", f"{start}-{end}", tuple(range(start, end + 1)))
            for seq, (start, end) in enumerate(plan_equal_parts(total_pages, params.parts), start=1)
        ]

    if strategy is SplitStrategy.CHUNK:
        return [
            PagePlan("chunk", f"{seq}-pages-{start}-{end}", f"{start}-{end}", tuple(range(start, end + 1)))
            for seq, (start, end) in enumerate(plan_chunks(total_pages, params.chunk_size), start=1)
        ]

    return [PagePlan("page", str(page), str(page), (page,)) for page, _ in plan_individual(total_pages)]


# ============================================================================
# WRITING
# ============================================================================


def split_document(
    document: Document,
    strategy: Union[SplitStrategy, str],
    params: SplitParams,
    manager: FileLifecycleManager,
    quiet: bool = True,
) -> List[SplitResult]:
    """
    Split a loaded document into sub-documents in the staging area.

    Args:
        document: Source document; it is only read.
        strategy: Strategy or strategy name (unknown names mean "individual").
        params: Selection expression, part count, or chunk size.
        manager: Lifecycle manager providing output paths and cleanup.
        quiet: Hide the progress bar.

    Returns:
        One SplitResult per output, in sequence order.

    Raises:
        ValidationError subclasses: Before anything is written.
        PartialWriteFailureError: If copying or writing fails; no outputs remain.
    """
    if not isinstance(strategy, SplitStrategy):
        strategy = SplitStrategy.from_name(strategy)

    total_pages = document.page_count
    plans = build_plans(total_pages, strategy, params)
    logger.info(
        "Splitting %s (%d pages) with strategy %s into %d file(s)",
        document.source,
        total_pages,
        strategy.value,
        len(plans),
        extra={"operation": "split", "strategy": strategy.value},
    )

    results: List[SplitResult] = []
    with manager.track() as tracker:
        for sequence, plan in enumerate(
            tqdm(plans, desc=f"Splitting {document.source}", unit="file", disable=quiet), start=1
        ):
            output_path = tracker.add(manager.artifact_path(plan.purpose, plan.label))
            try:
                part = Document.create()
                for page in document.copy_pages([number - 1 for number in plan.pages]):
                    part.add_page(page)
                part.write(output_path)
            except Exception as e:
                raise PartialWriteFailureError(
                    f"Failed to write part {sequence} (pages {plan.page_range_label}): {e}",
                    details={"sequence": sequence, "written": len(results)},
                ) from e

            results.append(
                SplitResult(
                    path=output_path,
                    display_name=output_path.name,
                    page_range_label=plan.page_range_label,
                    sequence_number=sequence,
                    pages=plan.pages,
                )
            )

    logger.info("Generated %d files", len(results))
    return results


def split_pdf(
    input_path: Path,
    strategy: Union[SplitStrategy, str],
    params: SplitParams,
    manager: FileLifecycleManager,
    quiet: bool = True,
) -> List[SplitResult]:
    """Load ``input_path`` and split it. See ``split_document``."""
    with Document.open(input_path) as document:
        return split_document(document, strategy, params, manager, quiet=quiet)
