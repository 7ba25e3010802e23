from __future__ import annotations

from typing import Literal

from pydantic import Field

from .base import CamelModel
from .book import Book
from .expense import Expense
from .restock import Restock
from .sale import Sale

RestoreStatus = Literal["success", "invalid", "rolled_back", "rollback_failed"]


class StoreSnapshot(CamelModel):
    """Full copy of all four collections."""

    books: list[Book] = Field(default_factory=list)
    sales: list[Sale] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)
    restocks: list[Restock] = Field(default_factory=list)


class ImportCounts(CamelModel):
    books: int = 0
    sales: int = 0
    expenses: int = 0
    restocks: int = 0


class RestoreResult(CamelModel):
    status: RestoreStatus
    success: bool
    imported: ImportCounts | None = None
    errors: list[str] = Field(default_factory=list)
    message: str
