"""Pure read-side computations over the store's collections.

Nothing here touches persistence: callers hand in the lists they read from the
``RecordStore`` and get fresh aggregates back on every call.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from ..schemas.book import DEFAULT_TARGET_STOCK, Book, StockValueItem
from ..schemas.dashboard import DashboardStats
from ..schemas.expense import Expense, ExpenseGroup
from ..schemas.sale import Sale, SalesGroup, SalesSummary
from .windows import in_window

UNKNOWN_BOOK = "Unknown Book"

SORT_REVENUE = "REVENUE"
SORT_PROFIT = "PROFIT"
SORT_COUNT = "COUNT"
SALES_SORT_MODES = (SORT_REVENUE, SORT_PROFIT, SORT_COUNT)

BOOK_SORT_NAME = "NAME"
BOOK_SORT_STOCK = "STOCK"
BOOK_SORT_PRICE = "PRICE"
BOOK_SORT_MODES = (BOOK_SORT_NAME, BOOK_SORT_STOCK, BOOK_SORT_PRICE)


def target_stock(book: Book) -> int:
    return book.target_stock or DEFAULT_TARGET_STOCK


def is_low_stock(book: Book) -> bool:
    """A book needs reordering once stock falls to its threshold (inclusive)."""

    return book.stock <= target_stock(book) or book.stock == 0


def reorder_quantity(book: Book) -> int:
    return max(0, target_stock(book) - book.stock)


def low_stock_first(books: Iterable[Book]) -> list[Book]:
    """Low-stock books first, then alphabetical by name within each band."""

    return sorted(books, key=lambda b: (0 if is_low_stock(b) else 1, b.name.casefold()))


def low_stock_books(books: Iterable[Book]) -> list[Book]:
    return [book for book in books if is_low_stock(book)]


def sort_books(books: Iterable[Book], mode: str = BOOK_SORT_NAME) -> list[Book]:
    key = (mode or BOOK_SORT_NAME).upper()
    if key == BOOK_SORT_NAME:
        return sorted(books, key=lambda b: b.name.casefold())
    if key == BOOK_SORT_STOCK:
        return sorted(books, key=lambda b: b.stock)
    if key == BOOK_SORT_PRICE:
        return sorted(books, key=lambda b: b.sell_price or 0.0, reverse=True)
    raise ValueError(f"Unknown book sort mode: {mode!r}")


def stock_value_breakdown(books: Iterable[Book]) -> list[StockValueItem]:
    rows = [
        StockValueItem(**book.model_dump(), total_value=book.stock * book.cost_price)
        for book in books
        if book.stock > 0
    ]
    rows.sort(key=lambda row: row.total_value, reverse=True)
    return rows


def dashboard_stats(
    books: Sequence[Book],
    sales: Sequence[Sale],
    expenses: Sequence[Expense],
) -> DashboardStats:
    total_sales = sum(sale.total_amount or 0.0 for sale in sales)
    gross_profit = sum(sale.profit or 0.0 for sale in sales)
    total_expenses = sum(expense.amount or 0.0 for expense in expenses)
    net_profit = gross_profit - total_expenses

    return DashboardStats(
        total_books=len(books),
        total_stock=sum(book.stock for book in books),
        stock_value=sum(book.stock * book.cost_price for book in books),
        total_sales=total_sales,
        gross_profit=gross_profit,
        total_expenses=total_expenses,
        net_profit=net_profit,
        profit_margin=(net_profit / total_sales * 100) if total_sales else 0.0,
        total_transactions=len(sales),
        low_stock_count=sum(1 for book in books if is_low_stock(book)),
    )


def newest_first(records: Iterable) -> list:
    return sorted(records, key=lambda record: record.date, reverse=True)


def select_window(records: Iterable, start, end=None) -> list:
    """Records whose ``date`` falls in ``[start, end)`` (open-ended when no end), newest first."""

    return newest_first(record for record in records if in_window(record.date, start, end))


def sales_summary(sales: Iterable[Sale]) -> SalesSummary:
    summary = SalesSummary()
    for sale in sales:
        summary.revenue += sale.total_amount or 0.0
        summary.profit += sale.profit or 0.0
        summary.count += 1
    return summary


def group_sales(sales: Iterable[Sale], sort: str = SORT_REVENUE) -> list[SalesGroup]:
    """Group sales by the book name captured at sale time."""

    groups: dict[str, SalesGroup] = {}
    for sale in sales:
        name = sale.book_name or UNKNOWN_BOOK
        group = groups.get(name)
        if group is None:
            group = groups[name] = SalesGroup(name=name)
        group.total_qty += sale.qty or 0
        group.total_revenue += sale.total_amount or 0.0
        group.total_profit += sale.profit or 0.0
        group.transactions.append(sale)

    rows = list(groups.values())
    key = (sort or SORT_REVENUE).upper()
    if key == SORT_REVENUE:
        rows.sort(key=lambda row: row.total_revenue, reverse=True)
    elif key == SORT_PROFIT:
        rows.sort(key=lambda row: row.total_profit, reverse=True)
    elif key == SORT_COUNT:
        rows.sort(key=lambda row: row.total_qty, reverse=True)
    else:
        raise ValueError(f"Unknown sales sort mode: {sort!r}")
    return rows


def group_expenses(expenses: Iterable[Expense]) -> list[ExpenseGroup]:
    groups: dict[str, ExpenseGroup] = {}
    for expense in expenses:
        group = groups.get(expense.type)
        if group is None:
            group = groups[expense.type] = ExpenseGroup(type=expense.type)
        group.total += expense.amount or 0.0
        group.count += 1
    return sorted(groups.values(), key=lambda row: row.total, reverse=True)


__all__ = [
    "BOOK_SORT_MODES",
    "SALES_SORT_MODES",
    "UNKNOWN_BOOK",
    "dashboard_stats",
    "group_expenses",
    "group_sales",
    "is_low_stock",
    "low_stock_books",
    "low_stock_first",
    "newest_first",
    "reorder_quantity",
    "sales_summary",
    "select_window",
    "sort_books",
    "stock_value_breakdown",
]
