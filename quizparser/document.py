"""
Document Source
===============
Page-level access to a source document: page count, plain text per page,
and rasterization of a page. PdfDocumentSource implements it with PyMuPDF.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional, Protocol, Union, runtime_checkable

import fitz  # PyMuPDF

from .errors import DocumentOpenError
from .models import PageText, RawDocumentText

logger = logging.getLogger(__name__)


@runtime_checkable
class DocumentSource(Protocol):
    """What the extraction engine needs from a document."""

    def get_page_count(self) -> int: ...

    def get_page_text(self, page_index: int) -> str: ...

    def render_page(self, page_index: int, scale: float) -> bytes: ...


class PdfDocumentSource:
    """
    DocumentSource backed by a PyMuPDF document.

    Usage:
        with PdfDocumentSource.open("exam.pdf") as source:
            text = source.get_page_text(0)
    """

    def __init__(self, doc: fitz.Document, name: str = ""):
        self._doc = doc
        self.name = name

    @classmethod
    def open(cls, pdf: Union[str, os.PathLike, bytes]) -> "PdfDocumentSource":
        """Open a PDF from a path or from raw bytes."""
        try:
            if isinstance(pdf, (bytes, bytearray)):
                doc = fitz.open(stream=bytes(pdf), filetype="pdf")
                name = "<memory>"
            else:
                path = os.fspath(pdf)
                if not os.path.exists(path):
                    raise FileNotFoundError(f"PDF not found: {path}")
                doc = fitz.open(path)
                name = os.path.basename(path)
        except FileNotFoundError:
            raise
        except Exception as e:
            raise DocumentOpenError(f"Cannot open PDF: {e}") from e

        logger.debug(f"Opened {name} ({doc.page_count} pages)")
        return cls(doc, name=name)

    def __enter__(self) -> "PdfDocumentSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._doc.close()

    @property
    def metadata(self) -> dict:
        return self._doc.metadata or {}

    def get_page_count(self) -> int:
        return self._doc.page_count

    def get_page_text(self, page_index: int) -> str:
        return self._doc[page_index].get_text("text")

    def render_page(self, page_index: int, scale: float) -> bytes:
        """Render a page to PNG bytes at the given zoom factor."""
        page = self._doc[page_index]
        pixmap = page.get_pixmap(matrix=fitz.Matrix(scale, scale))
        return pixmap.tobytes("png")


def read_document_text(
    source: DocumentSource,
    first_page: int = 0,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> RawDocumentText:
    """
    Read the text of every page, in order.

    Args:
        source: Document to read.
        first_page: Index of the first page to read (cover pages are skipped).
        progress_callback: Callback(page_index, total_pages) before each page.

    Returns:
        RawDocumentText with one entry per page read.
    """
    total = source.get_page_count()
    pages: list[PageText] = []

    for page_index in range(max(0, first_page), total):
        if progress_callback:
            progress_callback(page_index, total)
        pages.append(PageText(
            page_index=page_index,
            text=source.get_page_text(page_index),
        ))

    logger.info(f"Read text from {len(pages)} of {total} pages")
    return RawDocumentText(pages=pages)
