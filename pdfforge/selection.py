#!/usr/bin/env python3
"""Page selection parsing.

Turns a human-entered page expression such as ``"1-3,5,7-9"`` into an
ordered, deduplicated list of 1-based page numbers bounded by a document's
page count. The parser is lenient: tokens it cannot use are skipped rather
than rejected, and only an empty final selection is an error.

Functions:
    parse_page_selection: Parse an expression into a list of page numbers
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from pdfforge.errors import EmptySelectionError

logger = logging.getLogger(__name__)


def _parse_token(token: str, total_pages: int) -> Optional[Tuple[int, int]]:
    """Return the clamped (start, end) bounds for one token, or None to skip it."""
    if "-" not in token:
        try:
            page = int(token)
        except ValueError:
            return None
        if 1 <= page <= total_pages:
            return (page, page)
        return None

    # Exactly one hyphen; "1--5" and "1-5-9" are unusable.
    if token.count("-") != 1:
        return None

    start_str, end_str = (part.strip() for part in token.split("-"))
    # "-5" is the negative number -5 and "8-" lacks its end; both are unusable.
    if not start_str or not end_str:
        return None
    try:
        start = int(start_str)
        end = int(end_str)
    except ValueError:
        return None

    if start > end:
        return None

    start = max(start, 1)
    end = min(end, total_pages)
    if start > end:
        # Entirely outside the document.
        return None
    return (start, end)


def parse_page_selection(expression: Optional[str], total_pages: int) -> List[int]:
    """Parse a page selection expression into an ordered list of page numbers.

    Supported tokens (comma separated, whitespace ignored):
        - Single pages: "7"
        - Ranges: "2-5" (bounds clamped to the document)

    Tokens that are non-numeric, reversed ("5-3"), missing a bound ("8-"),
    negative ("-3"), or entirely out of range are skipped. Duplicates are
    removed while keeping the order in which pages were first mentioned, so
    "3,1-2" yields [3, 1, 2].

    Args:
        expression: The user's page expression.
        total_pages: Page count of the document the selection applies to.

    Returns:
        Non-empty list of page numbers, each in [1, total_pages].

    Raises:
        EmptySelectionError: If no valid page remains after parsing.

    Examples:
        >>> parse_page_selection("1-3,5,7-9", total_pages=10)
        [1, 2, 3, 5, 7, 8, 9]
        >>> parse_page_selection("9, 2-3, 2", total_pages=10)
        [9, 2, 3]
        >>> parse_page_selection("8-20", total_pages=10)
        [8, 9, 10]
    """
    selected: List[int] = []
    seen = set()

    for raw_token in (expression or "").split(","):
        token = raw_token.strip()
        if not token:
            continue

        bounds = _parse_token(token, total_pages)
        if bounds is None:
            logger.debug("Skipping unusable page token %r (document has %d pages)", token, total_pages)
            continue

        start, end = bounds
        for page in range(start, end + 1):
            if page not in seen:
                seen.add(page)
                selected.append(page)

    if not selected:
        raise EmptySelectionError(
            f"No valid pages selected from '{expression or ''}' (PDF has {total_pages} pages)",
            details={"expression": expression or "", "total_pages": total_pages},
        )

    return selected
