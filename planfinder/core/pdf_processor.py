"""
PDF processing module for uploaded plan PDFs.
Reads basic document metadata and renders the first page as a thumbnail.
"""

import fitz  # PyMuPDF
from typing import Dict, Any
from dataclasses import dataclass
from loguru import logger


class PDFProcessingError(Exception):
    """Raised when a PDF cannot be opened or rendered."""


@dataclass
class PDFInfo:
    """Basic information about an uploaded PDF."""
    page_count: int
    width: float
    height: float
    metadata: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page_count": self.page_count,
            "width": self.width,
            "height": self.height,
            "metadata": self.metadata,
        }


class PDFProcessor:
    """Handles PDF inspection and thumbnail rendering."""

    def __init__(self, thumbnail_width: int = 400):
        self.thumbnail_width = thumbnail_width

    def _open(self, data: bytes) -> "fitz.Document":
        try:
            return fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise PDFProcessingError(f"Could not open PDF: {e}") from e

    def inspect(self, data: bytes) -> PDFInfo:
        """
        Read page count, first page size and document metadata.

        Args:
            data: Raw PDF bytes

        Returns:
            PDFInfo for the document
        """
        doc = self._open(data)
        try:
            if doc.page_count == 0:
                raise PDFProcessingError("PDF has no pages")

            rect = doc[0].rect
            return PDFInfo(
                page_count=doc.page_count,
                width=rect.width,
                height=rect.height,
                metadata={k: v for k, v in (doc.metadata or {}).items() if v},
            )
        finally:
            doc.close()

    def page_count(self, data: bytes) -> int:
        return self.inspect(data).page_count

    def render_thumbnail(self, data: bytes, width: int = None) -> bytes:
        """
        Render the first page as a PNG scaled to the requested width.

        Args:
            data: Raw PDF bytes
            width: Thumbnail width in pixels (defaults to the processor setting)

        Returns:
            PNG bytes
        """
        width = width or self.thumbnail_width
        doc = self._open(data)
        try:
            if doc.page_count == 0:
                raise PDFProcessingError("PDF has no pages")

            page = doc.load_page(0)
            zoom = width / page.rect.width
            pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
            png = pixmap.tobytes("png")

            logger.debug(f"Rendered thumbnail {pixmap.width}x{pixmap.height}")
            return png
        except PDFProcessingError:
            raise
        except Exception as e:
            raise PDFProcessingError(f"Could not render thumbnail: {e}") from e
        finally:
            doc.close()
