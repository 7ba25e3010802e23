from __future__ import annotations

from .base import CamelModel


class DashboardStats(CamelModel):
    total_books: int = 0
    total_stock: int = 0
    stock_value: float = 0.0
    total_sales: float = 0.0
    gross_profit: float = 0.0
    total_expenses: float = 0.0
    net_profit: float = 0.0
    profit_margin: float = 0.0
    total_transactions: int = 0
    low_stock_count: int = 0
