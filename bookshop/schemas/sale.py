from __future__ import annotations

from typing import Optional

from pydantic import Field

from .base import CamelModel, UtcDatetime


class Sale(CamelModel):
    """An immutable sale record.

    ``book_name`` is a snapshot taken at sale time and ``profit`` is frozen at
    creation; neither follows later edits to the book.
    """

    id: int
    book_id: int = 0
    book_name: str = ""
    qty: int = 0
    total_amount: float = 0.0
    profit: float = 0.0
    date: UtcDatetime


class SaleCreate(CamelModel):
    book_id: int
    qty: int = Field(gt=0)
    total_amount: float = Field(ge=0)
    # Taken from the book when omitted.
    cost_price: Optional[float] = Field(default=None, ge=0)
    book_name: Optional[str] = None


class SalesSummary(CamelModel):
    revenue: float = 0.0
    profit: float = 0.0
    count: int = 0


class SalesGroup(CamelModel):
    name: str
    total_qty: int = 0
    total_revenue: float = 0.0
    total_profit: float = 0.0
    transactions: list[Sale] = Field(default_factory=list)


class SalesReport(CamelModel):
    summary: SalesSummary
    groups: list[SalesGroup] = Field(default_factory=list)
