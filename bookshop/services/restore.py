"""Restore the ledger from a spreadsheet backup.

The flow is: parse the workbook, validate every row (bad rows are dropped and
reported, never fatal), de-duplicate ids, then swap the store's contents. The
current data is captured before anything is cleared, and written back once if
the swap fails.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, tzinfo
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Any, Callable, Iterable, TypeVar

from openpyxl import load_workbook
from openpyxl.workbook import Workbook

from ..core.categories import normalize_expense_type
from ..core.errors import InvalidBackupError
from ..schemas.backup import ImportCounts, RestoreResult, StoreSnapshot
from ..schemas.book import DEFAULT_TARGET_STOCK, Book
from ..schemas.expense import Expense
from ..schemas.restock import Restock
from ..schemas.sale import Sale
from .windows import local_tz, parse_timestamp

LOGGER = logging.getLogger(__name__)

T = TypeVar("T", Book, Sale, Expense, Restock)

_INTEGER_RE = re.compile(r"^[+-]?\d+(?:\.\d*)?$")
_CURRENCY_CHARS = ("₹", "$", ",")

UNEXPECTED_ERROR_MESSAGE = "Restore failed due to an unexpected error"


@dataclass
class ParsedBackup:
    books: list[Book] = field(default_factory=list)
    sales: list[Sale] = field(default_factory=list)
    expenses: list[Expense] = field(default_factory=list)
    restocks: list[Restock] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.books or self.sales or self.expenses)

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(books=self.books, sales=self.sales, expenses=self.expenses, restocks=self.restocks)

    def counts(self) -> ImportCounts:
        return ImportCounts(
            books=len(self.books),
            sales=len(self.sales),
            expenses=len(self.expenses),
            restocks=len(self.restocks),
        )


# ---------------------------------------------------------------------------
# Cell coercion
# ---------------------------------------------------------------------------


def parse_int(value: Any) -> int | None:
    """Read an integer cell. Decimal text and floats truncate toward zero."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    text = str(value).strip()
    if not _INTEGER_RE.match(text):
        return None
    return int(Decimal(text))


def parse_number(value: Any) -> float | None:
    """Read a numeric cell, tolerating currency symbols and thousands separators."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        for char in _CURRENCY_CHARS:
            text = text.replace(char, "")
        if not text:
            return None
        try:
            number = float(Decimal(text))
        except (InvalidOperation, ValueError):
            # sNaN parses as a Decimal but refuses float conversion.
            return None
    return number if math.isfinite(number) else None


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # ISBNs and similar codes come back from spreadsheets as floats.
        return str(int(value))
    return str(value).strip()


def _date_text(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return cell_text(value)


def _time_text(value: Any) -> str:
    if isinstance(value, datetime):
        return value.time().isoformat()
    if isinstance(value, time):
        return value.isoformat()
    return cell_text(value)


def row_timestamp(row: dict[str, Any], tz: tzinfo) -> tuple[datetime | None, str]:
    """Timestamp of a row plus the raw text used in error messages.

    Rows written by the exporter carry separate local ``Date`` and ``Time``
    columns; older files carry one ISO ``date`` column.
    """

    raw_date = row.get("date")
    raw_time = row.get("time")
    if raw_time not in (None, "") and raw_date not in (None, ""):
        day = _date_text(raw_date)
        if len(day) <= 10:
            moment = _time_text(raw_time)
            return parse_timestamp(f"{day}T{moment}", tz), f"{day} {moment}"
    if isinstance(raw_date, (datetime, date)):
        return parse_timestamp(raw_date, tz), _date_text(raw_date)
    text = cell_text(raw_date)
    return parse_timestamp(text, tz), text


# ---------------------------------------------------------------------------
# Row validation
# ---------------------------------------------------------------------------


def _valid_id(row: dict[str, Any], label: str, index: int, errors: list[str]) -> int | None:
    record_id = parse_int(row.get("id"))
    if record_id is None or record_id <= 0:
        errors.append(f"{label} row {index}: Invalid id")
        return None
    return record_id


def validate_book_row(row: dict[str, Any], index: int, errors: list[str]) -> Book | None:
    record_id = _valid_id(row, "Books", index, errors)
    if record_id is None:
        return None
    name = cell_text(row.get("name"))
    if not name:
        errors.append(f"Books row {index}: Missing name")
        return None
    return Book(
        id=record_id,
        name=name,
        author=cell_text(row.get("author")),
        isbn=cell_text(row.get("isbn")),
        cost_price=max(0.0, parse_number(row.get("costprice")) or 0.0),
        sell_price=max(0.0, parse_number(row.get("sellprice")) or 0.0),
        stock=max(0, parse_int(row.get("stock")) or 0),
        target_stock=max(1, parse_int(row.get("targetstock")) or DEFAULT_TARGET_STOCK),
    )


def validate_sale_row(row: dict[str, Any], index: int, errors: list[str], tz: tzinfo) -> Sale | None:
    record_id = _valid_id(row, "Sales", index, errors)
    if record_id is None:
        return None
    when, raw = row_timestamp(row, tz)
    if when is None:
        errors.append(f'Sales row {index}: Invalid date "{raw}"')
        return None
    return Sale(
        id=record_id,
        book_id=parse_int(row.get("bookid")) or 0,
        book_name=cell_text(row.get("bookname")),
        qty=max(0, parse_int(row.get("qty")) or 0),
        total_amount=max(0.0, parse_number(row.get("totalamount")) or 0.0),
        profit=parse_number(row.get("profit")) or 0.0,
        date=when,
    )


def validate_expense_row(row: dict[str, Any], index: int, errors: list[str], tz: tzinfo) -> Expense | None:
    record_id = _valid_id(row, "Expenses", index, errors)
    if record_id is None:
        return None
    amount = parse_number(row.get("amount"))
    if amount is None or amount < 0:
        errors.append(f"Expenses row {index}: Invalid amount")
        return None
    when, raw = row_timestamp(row, tz)
    if when is None:
        errors.append(f'Expenses row {index}: Invalid date "{raw}"')
        return None
    return Expense(
        id=record_id,
        type=normalize_expense_type(cell_text(row.get("type"))),
        amount=amount,
        description=cell_text(row.get("description")),
        date=when,
    )


def validate_restock_row(row: dict[str, Any], index: int, errors: list[str], tz: tzinfo) -> Restock | None:
    record_id = _valid_id(row, "Restocks", index, errors)
    if record_id is None:
        return None
    when, raw = row_timestamp(row, tz)
    if when is None:
        errors.append(f'Restocks row {index}: Invalid date "{raw}"')
        return None
    return Restock(
        id=record_id,
        book_id=parse_int(row.get("bookid")) or 0,
        book_name=cell_text(row.get("bookname")),
        qty_added=max(1, parse_int(row.get("qtyadded")) or 1),
        date=when,
    )


def _collect(rows: Iterable[dict[str, Any]], validate: Callable[[dict[str, Any], int], T | None]) -> list[T]:
    """Validate rows in order; the first record for an id wins, later ones are dropped quietly."""

    accepted: list[T] = []
    seen: set[int] = set()
    for index, row in enumerate(rows, start=1):
        record = validate(row, index)
        if record is None or record.id in seen:
            continue
        seen.add(record.id)
        accepted.append(record)
    return accepted


# ---------------------------------------------------------------------------
# Workbook parsing
# ---------------------------------------------------------------------------


def read_workbook(content: bytes) -> Workbook:
    try:
        return load_workbook(BytesIO(content), data_only=True)
    except Exception as exc:
        # openpyxl raises a wide mix of zip, xml and key errors for bad input.
        LOGGER.warning("restore.unreadable", extra={"extra_data": {"error": str(exc)}})
        raise InvalidBackupError(
            "Failed to parse Excel file",
            ["File is corrupted or not a valid Excel file"],
        ) from exc


def sheet_rows(wb: Workbook, name: str) -> list[dict[str, Any]]:
    """Rows of a sheet as dicts keyed by lower-cased header; blank rows skipped."""

    values = list(wb[name].iter_rows(values_only=True))
    if not values:
        return []
    header = [cell_text(cell).lower() for cell in values[0]]
    rows: list[dict[str, Any]] = []
    for raw in values[1:]:
        if all(cell is None or cell == "" for cell in raw):
            continue
        rows.append({key: raw[i] if i < len(raw) else None for i, key in enumerate(header) if key})
    return rows


def find_sheet(wb: Workbook, name: str) -> str | None:
    target = name.lower()
    return next((title for title in wb.sheetnames if title.lower() == target), None)


def parse_backup(content: bytes, tz: tzinfo | None = None) -> ParsedBackup:
    """Parse and validate a backup workbook without touching the store."""

    zone = local_tz(tz)
    wb = read_workbook(content)

    books_sheet = find_sheet(wb, "Books")
    sales_sheet = find_sheet(wb, "Sales")
    if not books_sheet and not sales_sheet:
        raise InvalidBackupError(
            "Invalid backup file structure",
            ['Required sheets "Books" or "Sales" not found in workbook'],
        )
    expenses_sheet = find_sheet(wb, "Expenses")
    restocks_sheet = find_sheet(wb, "Restocks")

    def rows(sheet: str | None) -> list[dict[str, Any]]:
        return sheet_rows(wb, sheet) if sheet else []

    parsed = ParsedBackup()
    errors = parsed.errors
    parsed.books = _collect(rows(books_sheet), lambda row, i: validate_book_row(row, i, errors))
    parsed.sales = _collect(rows(sales_sheet), lambda row, i: validate_sale_row(row, i, errors, zone))
    parsed.expenses = _collect(rows(expenses_sheet), lambda row, i: validate_expense_row(row, i, errors, zone))
    parsed.restocks = _collect(rows(restocks_sheet), lambda row, i: validate_restock_row(row, i, errors, zone))
    return parsed


def _success_message(counts: ImportCounts) -> str:
    message = f"Restored {counts.books} books, {counts.sales} sales, {counts.expenses} expenses"
    if counts.restocks:
        message += f", {counts.restocks} restocks"
    return message


def restore_from_excel(store, content: bytes, *, tz: tzinfo | None = None) -> RestoreResult:
    """Replace the store's data with the workbook's, rolling back on failure."""

    try:
        parsed = parse_backup(content, tz)
    except InvalidBackupError as exc:
        return RestoreResult(status="invalid", success=False, errors=exc.errors, message=exc.message)
    except Exception as exc:
        # Nothing has been written yet, so the store is untouched.
        LOGGER.error("restore.parse_failed", exc_info=True)
        return RestoreResult(
            status="invalid",
            success=False,
            errors=[f"Unexpected error: {exc}"],
            message=UNEXPECTED_ERROR_MESSAGE,
        )

    errors = list(parsed.errors)
    if errors:
        LOGGER.warning("restore.rows_rejected", extra={"extra_data": {"count": len(errors)}})

    if parsed.is_empty:
        return RestoreResult(
            status="invalid",
            success=False,
            errors=[*errors, "No valid data found to restore"],
            message="Restore file contains no valid data",
        )

    # Writers wait until the swap, or its rollback, is finished.
    with store.exclusive():
        previous = store.export_raw()
        try:
            store.clear_all()
            store.replace_all(parsed.snapshot())
        except Exception as exc:
            LOGGER.error("restore.write_failed", exc_info=True)
            errors.append(f"Restore failed: {exc}")
            try:
                store.replace_all(previous)
            except Exception as rollback_exc:
                LOGGER.critical("restore.rollback_failed", exc_info=True)
                errors.append(f"Rollback failed: {rollback_exc}")
                return RestoreResult(
                    status="rollback_failed",
                    success=False,
                    errors=errors,
                    message="Restore failed and previous data could not be restored; data integrity is uncertain",
                )
            LOGGER.warning("restore.rolled_back")
            return RestoreResult(
                status="rolled_back",
                success=False,
                errors=errors,
                message="Restore failed, previous data has been kept",
            )

    counts = parsed.counts()
    LOGGER.info("restore.completed", extra={"extra_data": counts.model_dump()})
    return RestoreResult(
        status="success",
        success=True,
        imported=counts,
        errors=errors,
        message=_success_message(counts),
    )


__all__ = [
    "ParsedBackup",
    "cell_text",
    "parse_backup",
    "parse_int",
    "parse_number",
    "restore_from_excel",
    "validate_book_row",
    "validate_expense_row",
    "validate_restock_row",
    "validate_sale_row",
]
