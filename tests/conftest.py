import io

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas


def _render(pages: list[list[str]]) -> bytes:
    buf = io.BytesIO()
    pdf = canvas.Canvas(buf, pagesize=A4)
    for lines in pages:
        for offset, line in enumerate(lines):
            pdf.drawString(72, 760 - offset * 18, line)
        pdf.showPage()
    pdf.save()
    return buf.getvalue()


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Single-page invoice with two known lines."""
    return _render([["Invoice 2024-017", "Total due: 1200 EUR"]])


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Two-page report with one known line per page."""
    return _render([["Quarterly report: revenue"], ["Quarterly report: costs"]])


@pytest.fixture()
def empty_pdf_bytes() -> bytes:
    """Valid PDF whose only page has no text."""
    return _render([[]])
