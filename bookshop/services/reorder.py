"""Reorder list for low-stock books, as a shareable message or a one-page PDF."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Iterable, Mapping, Optional

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from ..schemas.book import Book
from .analytics import reorder_quantity
from .windows import local_tz, utcnow

LOGGER = logging.getLogger(__name__)

MESSAGE_HEADER = "*Book Reorder List*\n_Automated Order_\n\n"
PDF_FONT_FAMILY = "Helvetica"


@dataclass(frozen=True)
class ReorderLine:
    book_id: int
    name: str
    author: str
    stock: int
    qty: int

    def as_text(self) -> str:
        return f"- {self.name}: *{self.qty} pcs*"


def build_reorder_lines(
    books: Iterable[Book],
    overrides: Optional[Mapping[int, int]] = None,
    selected: Optional[Iterable[int]] = None,
) -> list[ReorderLine]:
    """One line per selected book with a positive order quantity.

    The quantity defaults to what brings the book back to its target stock and
    can be overridden per book id. ``selected=None`` means every book.
    """

    overrides = overrides or {}
    chosen = set(selected) if selected is not None else None
    lines: list[ReorderLine] = []
    for book in books:
        if chosen is not None and book.id not in chosen:
            continue
        qty = overrides.get(book.id, reorder_quantity(book))
        if qty is None or qty <= 0:
            continue
        lines.append(ReorderLine(book_id=book.id, name=book.name, author=book.author, stock=book.stock, qty=qty))
    if not lines:
        raise ValueError("No items selected to order")
    return lines


def format_reorder_message(lines: Iterable[ReorderLine]) -> str:
    return MESSAGE_HEADER + "".join(f"{line.as_text()}\n" for line in lines)


def _latin1(text: str) -> str:
    # The core PDF fonts only cover latin-1.
    return text.encode("latin-1", "replace").decode("latin-1")


def render_reorder_pdf(
    lines: list[ReorderLine],
    generated_at: datetime | None = None,
    tz: tzinfo | None = None,
) -> bytes:
    """Render the reorder list as a single table-like PDF page."""

    pdf = FPDF(unit="mm", format="A4")
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()

    effective_width = pdf.w - pdf.l_margin - pdf.r_margin
    qty_width = 30
    stock_width = 30
    name_width = effective_width - qty_width - stock_width

    pdf.set_font(PDF_FONT_FAMILY, "B", 16)
    pdf.cell(effective_width, 10, "Book Reorder List", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    stamp = (generated_at or utcnow()).astimezone(local_tz(tz))
    pdf.set_font(PDF_FONT_FAMILY, size=10)
    pdf.cell(
        effective_width,
        5,
        f"Generated: {stamp.strftime('%Y-%m-%d %H:%M')}",
        new_x=XPos.LMARGIN,
        new_y=YPos.NEXT,
    )
    pdf.ln(4)

    pdf.set_font(PDF_FONT_FAMILY, "B", 11)
    pdf.cell(name_width, 7, "Book", border="B")
    pdf.cell(stock_width, 7, "In stock", border="B", align="R")
    pdf.cell(qty_width, 7, "Order", border="B", align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    pdf.set_font(PDF_FONT_FAMILY, "", 11)
    total = 0
    for line in lines:
        label = line.name if not line.author else f"{line.name} ({line.author})"
        pdf.cell(name_width, 6.5, _latin1(label))
        pdf.cell(stock_width, 6.5, str(line.stock), align="R")
        pdf.cell(qty_width, 6.5, f"{line.qty} pcs", align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        total += line.qty

    pdf.ln(2)
    pdf.set_font(PDF_FONT_FAMILY, "B", 11)
    pdf.cell(name_width + stock_width, 7, "Total", border="T")
    pdf.cell(qty_width, 7, f"{total} pcs", border="T", align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    LOGGER.info("reorder.pdf_rendered", extra={"extra_data": {"lines": len(lines), "total": total}})
    output = pdf.output()
    if isinstance(output, str):
        return output.encode("latin1")
    return bytes(output)


__all__ = [
    "MESSAGE_HEADER",
    "ReorderLine",
    "build_reorder_lines",
    "format_reorder_message",
    "render_reorder_pdf",
]
