from __future__ import annotations

from .base import CamelModel, UtcDatetime


class Restock(CamelModel):
    """Audit entry written whenever a book's stock goes up."""

    id: int
    book_id: int = 0
    book_name: str = ""
    qty_added: int
    date: UtcDatetime
