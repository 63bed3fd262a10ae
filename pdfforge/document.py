#!/usr/bin/env python3
"""Document parser/writer collaborator built on PyPDF2.

A Document is a request-local handle to a parsed PDF. Loaded documents wrap
a PdfReader; documents created for output wrap a PdfWriter. Pages copied out
of one Document and added to another are cloned into the destination writer
by PyPDF2, so the source Document is never modified.

Usage:
    ```python
    source = Document.open(Path("in.pdf"))
    out = Document.create()
    for page in source.copy_pages([2, 0]):
        out.add_page(page)
    out.write(Path("out.pdf"))
    ```
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from PyPDF2 import PageObject, PdfReader, PdfWriter

from pdfforge.errors import CorruptSourceError

logger = logging.getLogger(__name__)


class Document:
    """In-memory PDF document.

    Use the ``load``, ``open`` and ``create`` constructors rather than
    instantiating directly.
    """

    def __init__(
        self,
        reader: Optional[PdfReader] = None,
        source: Optional[str] = None,
    ) -> None:
        self._reader = reader
        self._writer: Optional[PdfWriter] = None if reader is not None else PdfWriter()
        self.source = source or "<new document>"

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, data: bytes, source: Optional[str] = None) -> "Document":
        """Parse PDF bytes.

        Raises:
            CorruptSourceError: If the bytes do not parse as a PDF with pages,
                or the document is password protected.
        """
        label = source or "<bytes>"
        try:
            reader = PdfReader(io.BytesIO(data), strict=False)
            if reader.is_encrypted and reader.decrypt("") == 0:
                raise CorruptSourceError(
                    f"PDF is password-protected: {label}", details={"source": label}
                )
            # Force the page tree to be walked so truncated files fail here.
            len(reader.pages)
        except CorruptSourceError:
            raise
        except Exception as e:
            raise CorruptSourceError(
                f"Failed to parse PDF '{label}': {e}", details={"source": label}
            ) from e
        return cls(reader=reader, source=label)

    @classmethod
    def open(cls, path: Union[str, Path]) -> "Document":
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise CorruptSourceError(
                f"Cannot read PDF '{path.name}': {e}", details={"source": str(path)}
            ) from e
        return cls.load(data, source=path.name)

    @classmethod
    def create(cls) -> "Document":
        return cls()

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    @property
    def pages(self) -> Sequence[PageObject]:
        if self._writer is not None:
            return self._writer.pages
        assert self._reader is not None
        return self._reader.pages

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def copy_pages(self, indices: Sequence[int]) -> List[PageObject]:
        """Return the pages at the given 0-based indices, in the given order.

        Raises:
            IndexError: If any index is outside the document.
        """
        total = self.page_count
        pages: List[PageObject] = []
        for index in indices:
            if not 0 <= index < total:
                raise IndexError(f"Page index {index} out of range (document has {total} pages)")
            pages.append(self.pages[index])
        return pages

    def add_page(self, page: PageObject) -> PageObject:
        """Append a page; pages from other documents are cloned in."""
        return self._ensure_writer().add_page(page)

    def _ensure_writer(self) -> PdfWriter:
        if self._writer is None:
            assert self._reader is not None
            writer = PdfWriter()
            for page in self._reader.pages:
                writer.add_page(page)
            self._writer = writer
            self._reader = None
        return self._writer

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def save(self, compress: bool = True) -> bytes:
        """Serialize to PDF bytes.

        Loaded documents are re-saved structurally: every page is copied into a
        fresh writer, so unreferenced objects are dropped. With ``compress``
        the page content streams are Flate-encoded. Nothing is rasterized or
        downsampled.
        """
        if self._writer is not None:
            writer = self._writer
        else:
            assert self._reader is not None
            writer = PdfWriter()
            for page in self._reader.pages:
                writer.add_page(page)
            metadata = self._reader.metadata
            if metadata:
                writer.add_metadata({key: str(metadata[key]) for key in metadata})

        if compress:
            for number, page in enumerate(writer.pages, start=1):
                try:
                    page.compress_content_streams()
                except Exception as e:
                    # Page is written with its original stream encoding.
                    logger.debug("Could not recompress page %d of %s: %s", number, self.source, e)

        buffer = io.BytesIO()
        writer.write(buffer)
        return buffer.getvalue()

    def write(self, path: Union[str, Path], compress: bool = True) -> int:
        """Serialize to ``path``. Returns the number of bytes written."""
        data = self.save(compress=compress)
        Path(path).write_bytes(data)
        return len(data)

    def close(self) -> None:
        self._reader = None
        self._writer = None

    def __enter__(self) -> "Document":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        released = self._reader is None and self._writer is None
        pages = 0 if released else self.page_count
        return f"Document(source={self.source!r}, pages={pages})"
