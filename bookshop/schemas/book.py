from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator

from .base import CamelModel, UtcDatetime

DEFAULT_TARGET_STOCK = 5


class BookFields(CamelModel):
    name: str
    author: str = ""
    isbn: str = ""
    stock: int = 0
    target_stock: int = DEFAULT_TARGET_STOCK
    cost_price: float = 0.0
    sell_price: float = 0.0

    @field_validator("stock")
    @classmethod
    def _clamp_stock(cls, value: int) -> int:
        return max(0, value)

    @field_validator("target_stock")
    @classmethod
    def _default_target(cls, value: int) -> int:
        return value if value > 0 else DEFAULT_TARGET_STOCK

    @field_validator("cost_price", "sell_price")
    @classmethod
    def _clamp_price(cls, value: float) -> float:
        return max(0.0, value)


class Book(BookFields):
    """A title on the shelf. ``last_stocked_at`` moves whenever stock goes up."""

    id: int
    last_stocked_at: Optional[UtcDatetime] = None


class BookCreate(BookFields):
    """Payload for adding or editing a book; the store assigns the id."""

    name: str = Field(min_length=1)
    stock: int = Field(default=0, ge=0)
    target_stock: int = Field(default=DEFAULT_TARGET_STOCK, ge=1)
    cost_price: float = Field(default=0.0, ge=0)
    sell_price: float = Field(default=0.0, ge=0)

    @field_validator("name", "author", "isbn")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        if not value:
            raise ValueError("name is required")
        return value


class StockAdjustment(CamelModel):
    delta: int


class StockValueItem(Book):
    total_value: float
