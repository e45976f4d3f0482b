"""
Tests for PDF inspection and thumbnail rendering.
"""

import pytest

from conftest import make_pdf
from planfinder.core.pdf_processor import PDFProcessingError, PDFProcessor


PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_inspect(pdf_bytes):
    info = PDFProcessor().inspect(pdf_bytes)

    assert info.page_count == 1
    assert info.width == pytest.approx(595)
    assert info.height == pytest.approx(842)
    assert info.to_dict()["page_count"] == 1


def test_page_count():
    assert PDFProcessor().page_count(make_pdf(pages=3)) == 3


def test_render_thumbnail_is_png(pdf_bytes):
    png = PDFProcessor(thumbnail_width=200).render_thumbnail(pdf_bytes)
    assert png.startswith(PNG_SIGNATURE)


def test_thumbnail_width(pdf_bytes):
    png = PDFProcessor().render_thumbnail(pdf_bytes, width=120)
    width = int.from_bytes(png[16:20], "big")  # IHDR width
    assert abs(width - 120) <= 1


@pytest.mark.parametrize("data", [b"", b"not a pdf"])
def test_invalid_bytes(data):
    processor = PDFProcessor()
    with pytest.raises(PDFProcessingError):
        processor.inspect(data)
    with pytest.raises(PDFProcessingError):
        processor.render_thumbnail(data)
