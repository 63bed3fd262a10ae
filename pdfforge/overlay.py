#!/usr/bin/env python3
"""Page rotation and text overlays, implemented with PyMuPDF.

Coordinates accepted by the public functions are PDF user space: origin at
the bottom-left corner, y growing upwards. PyMuPDF measures from the top-left,
so y values are flipped against the page height before drawing.

Every function reads ``input_path`` and writes a new file at
``output_path``; the input is never modified.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Tuple, Union

import fitz  # PyMuPDF

from pdfforge.errors import CorruptSourceError, InvalidRotationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
Color = Tuple[float, float, float]

FONT_NAME = "helv"

WATERMARK_TEXT = "CONFIDENTIAL"
WATERMARK_FONT_SIZE = 48
WATERMARK_COLOR: Color = (0.5, 0.5, 0.5)
WATERMARK_OPACITY = 0.3
WATERMARK_ANGLE = 45

SIGNATURE_TEXT = "Signed"
SIGNATURE_FONT_SIZE = 16
SIGNATURE_COLOR: Color = (1.0, 0.0, 0.0)
SIGNATURE_POSITION = (50.0, 50.0)

EDIT_FONT_SIZE = 12
EDIT_COLOR: Color = (0.0, 0.0, 0.0)
EDIT_POSITION = (50.0, 500.0)


@contextmanager
def _open_pdf(input_path: PathLike) -> Iterator[Any]:
    path = Path(input_path)
    try:
        doc = fitz.open(str(path), filetype="pdf")
    except Exception as e:
        raise CorruptSourceError(f"Invalid or corrupted PDF file: {path.name}", details={"error": str(e)}) from e
    try:
        if not doc.is_pdf or doc.page_count == 0:
            raise CorruptSourceError(f"Invalid or corrupted PDF file: {path.name}")
        yield doc
    finally:
        doc.close()


def _save(doc: Any, output_path: PathLike) -> Path:
    output_path = Path(output_path)
    # Drop unused objects and deflate streams
    doc.save(str(output_path), garbage=4, deflate=True)
    return output_path


def _to_fitz_point(page: Any, x: float, y: float) -> Any:
    """Convert a bottom-left origin point to PyMuPDF's top-left origin."""
    return fitz.Point(float(x), page.rect.height - float(y))


def _draw_on_page(
    input_path: PathLike,
    output_path: PathLike,
    text: str,
    x: float,
    y: float,
    page_number: Any,
    fontsize: float,
    color: Color,
    operation: str,
) -> Path:
    with _open_pdf(input_path) as doc:
        try:
            index = int(page_number)
        except (TypeError, ValueError):
            index = -1
        if text and 0 <= index < doc.page_count:
            page = doc[index]
            page.insert_text(
                _to_fitz_point(page, x, y),
                text,
                fontsize=fontsize,
                fontname=FONT_NAME,
                color=color,
            )
        else:
            logger.debug("%s: page %r out of range for %d page(s), no text drawn", operation, page_number, doc.page_count)
        return _save(doc, output_path)


def rotate_pdf(input_path: PathLike, output_path: PathLike, rotation: Any = 90) -> Path:
    """
    Rotate every page by ``rotation`` degrees clockwise.

    The rotation is added to each page's existing rotation, modulo 360.

    Raises:
        InvalidRotationError: If rotation is not a whole multiple of 90.
        CorruptSourceError: If the input cannot be opened.
    """
    try:
        degrees = int(rotation)
    except (TypeError, ValueError):
        raise InvalidRotationError(f"Invalid rotation: {rotation!r}. Must be a multiple of 90") from None
    if degrees % 90 != 0:
        raise InvalidRotationError(
            f"Invalid rotation: {degrees}. Must be a multiple of 90",
            details={"rotation": degrees},
        )

    with _open_pdf(input_path) as doc:
        for page in doc:
            page.set_rotation((page.rotation + degrees) % 360)
        logger.info("Rotated %d page(s) by %d degrees", doc.page_count, degrees)
        return _save(doc, output_path)


def watermark_pdf(input_path: PathLike, output_path: PathLike, text: str = WATERMARK_TEXT) -> Path:
    """Draw a translucent diagonal text watermark across the middle of every page."""
    text = text or WATERMARK_TEXT
    with _open_pdf(input_path) as doc:
        for page in doc:
            rect = page.rect
            origin = _to_fitz_point(page, rect.width / 2 - 50, rect.height / 2)
            page.insert_text(
                origin,
                text,
                fontsize=WATERMARK_FONT_SIZE,
                fontname=FONT_NAME,
                color=WATERMARK_COLOR,
                fill_opacity=WATERMARK_OPACITY,
                stroke_opacity=WATERMARK_OPACITY,
                morph=(origin, fitz.Matrix(-WATERMARK_ANGLE)),
            )
        logger.info("Watermarked %d page(s)", doc.page_count)
        return _save(doc, output_path)


def sign_pdf(
    input_path: PathLike,
    output_path: PathLike,
    text: str = SIGNATURE_TEXT,
    x: float = SIGNATURE_POSITION[0],
    y: float = SIGNATURE_POSITION[1],
    page_number: int = 0,
) -> Path:
    """Stamp red signature text on one page (0-based).

    An out-of-range ``page_number`` writes the document unchanged.
    """
    return _draw_on_page(
        input_path,
        output_path,
        text or SIGNATURE_TEXT,
        x,
        y,
        page_number,
        SIGNATURE_FONT_SIZE,
        SIGNATURE_COLOR,
        "sign",
    )


def edit_pdf(
    input_path: PathLike,
    output_path: PathLike,
    text: str,
    x: float = EDIT_POSITION[0],
    y: float = EDIT_POSITION[1],
    page_number: int = 0,
) -> Path:
    """Add black text to one page (0-based); same page rule as ``sign_pdf``."""
    return _draw_on_page(
        input_path,
        output_path,
        text,
        x,
        y,
        page_number,
        EDIT_FONT_SIZE,
        EDIT_COLOR,
        "edit",
    )
