from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator

from ..core.categories import EXPENSE_TYPE_MISC, normalize_expense_type
from .base import CamelModel, UtcDatetime


class Expense(CamelModel):
    id: int
    type: str = EXPENSE_TYPE_MISC
    amount: float = 0.0
    description: str = ""
    date: UtcDatetime

    @field_validator("type")
    @classmethod
    def _normalize_type(cls, value: str) -> str:
        return normalize_expense_type(value)


class ExpenseCreate(CamelModel):
    type: str = EXPENSE_TYPE_MISC
    amount: float = Field(gt=0)
    description: str = ""
    date: Optional[UtcDatetime] = None

    @field_validator("type")
    @classmethod
    def _normalize_type(cls, value: str) -> str:
        return normalize_expense_type(value)

    @field_validator("description")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class ExpenseGroup(CamelModel):
    type: str
    total: float = 0.0
    count: int = 0
