"""Spreadsheet backup of the whole ledger.

The workbook has six sheets: Summary, Books, Sales, Expenses, Low Stock and
Restocks. Data sheets are a header row followed by one row per record;
timestamps are split into local ``Date`` and ``Time`` columns so the file reads
well in a spreadsheet and can be fed straight back into the restore importer.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from io import BytesIO
from typing import Any, Iterable, Sequence
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ..schemas.backup import StoreSnapshot
from ..schemas.book import DEFAULT_TARGET_STOCK, Book
from ..schemas.dashboard import DashboardStats
from .analytics import dashboard_stats, low_stock_books, reorder_quantity
from .windows import local_tz, utcnow

LOGGER = logging.getLogger(__name__)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SUMMARY_SHEET = "Summary"
BOOKS_SHEET = "Books"
SALES_SHEET = "Sales"
EXPENSES_SHEET = "Expenses"
LOW_STOCK_SHEET = "Low Stock"
RESTOCKS_SHEET = "Restocks"

SUMMARY_TITLE = "Book Inventory Backup Summary"

BOOKS_HEADER = ("id", "name", "author", "isbn", "costPrice", "sellPrice", "stock", "targetStock")
SALES_HEADER = ("id", "bookId", "bookName", "qty", "totalAmount", "profit", "Date", "Time")
EXPENSES_HEADER = ("id", "type", "amount", "description", "Date", "Time")
LOW_STOCK_HEADER = ("name", "author", "stock", "targetStock", "needed")
RESTOCKS_HEADER = ("id", "bookId", "bookName", "qtyAdded", "Date", "Time")

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"
GENERATED_FORMAT = "%d/%m/%Y, %I:%M:%S %p"

CORE_PROPS_PATH = "docProps/core.xml"
_MODIFIED_RE = re.compile(rb"(<dcterms:modified[^>]*>)[^<]*(</dcterms:modified>)")


@dataclass(frozen=True)
class BackupFile:
    file_name: str
    content: bytes
    media_type: str = XLSX_MIME
    message: str = "Backup created successfully"


def _num(value: Any, default: float = 0) -> Any:
    return value if value is not None else default


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _split_timestamp(value: datetime | None, tz: tzinfo) -> tuple[str, str]:
    if value is None:
        return "", ""
    local = value.astimezone(tz)
    return local.strftime(DATE_FORMAT), local.strftime(TIME_FORMAT)


def backup_filename(now: datetime | None = None, tz: tzinfo | None = None) -> str:
    local = (now or utcnow()).astimezone(local_tz(tz))
    return f"BookInventory_Backup_{local.strftime('%Y-%m-%d_%H-%M')}.xlsx"


def _append_sheet(wb: Workbook, title: str, header: Sequence[str], rows: Iterable[Sequence[Any]], width: int) -> Worksheet:
    ws = wb.create_sheet(title)
    ws.append(list(header))
    for row in rows:
        ws.append(list(row))
    for index in range(1, len(header) + 1):
        ws.column_dimensions[get_column_letter(index)].width = width
    return ws


def _summary_rows(stats: DashboardStats, generated_at: datetime, tz: tzinfo) -> list[list[Any]]:
    return [
        [SUMMARY_TITLE],
        ["Generated", generated_at.astimezone(tz).strftime(GENERATED_FORMAT)],
        [""],
        ["Metric", "Value"],
        ["Total Books", stats.total_books],
        ["Total Stock", stats.total_stock],
        ["Stock Value", stats.stock_value],
        ["Total Sales Revenue", stats.total_sales],
        ["Gross Profit", stats.gross_profit],
        ["Total Expenses", stats.total_expenses],
        ["Net Profit", stats.net_profit],
        ["Profit Margin %", round(stats.profit_margin, 2)],
        ["Total Transactions", stats.total_transactions],
        ["Low Stock Count", stats.low_stock_count],
    ]


def build_backup_workbook(
    snapshot: StoreSnapshot,
    *,
    generated_at: datetime,
    stats: DashboardStats | None = None,
    low_stock: Sequence[Book] | None = None,
    tz: tzinfo | None = None,
) -> Workbook:
    """Lay the snapshot out as a workbook. Missing values become 0 or ""."""

    zone = local_tz(tz)
    stats = stats or dashboard_stats(snapshot.books, snapshot.sales, snapshot.expenses)
    low_stock = low_stock if low_stock is not None else low_stock_books(snapshot.books)

    wb = Workbook()
    summary = wb.active
    summary.title = SUMMARY_SHEET
    for row in _summary_rows(stats, generated_at, zone):
        summary.append(row)
    summary.column_dimensions["A"].width = 22
    summary.column_dimensions["B"].width = 20

    _append_sheet(
        wb,
        BOOKS_SHEET,
        BOOKS_HEADER,
        (
            [
                b.id,
                _text(b.name),
                _text(b.author),
                _text(b.isbn),
                _num(b.cost_price),
                _num(b.sell_price),
                _num(b.stock),
                b.target_stock or DEFAULT_TARGET_STOCK,
            ]
            for b in snapshot.books
        ),
        16,
    )
    _append_sheet(
        wb,
        SALES_SHEET,
        SALES_HEADER,
        (
            [
                s.id,
                _num(s.book_id),
                _text(s.book_name),
                _num(s.qty),
                _num(s.total_amount),
                _num(s.profit),
                *_split_timestamp(s.date, zone),
            ]
            for s in snapshot.sales
        ),
        16,
    )
    _append_sheet(
        wb,
        EXPENSES_SHEET,
        EXPENSES_HEADER,
        (
            [e.id, _text(e.type), _num(e.amount), _text(e.description), *_split_timestamp(e.date, zone)]
            for e in snapshot.expenses
        ),
        18,
    )
    _append_sheet(
        wb,
        LOW_STOCK_SHEET,
        LOW_STOCK_HEADER,
        (
            [
                _text(b.name),
                _text(b.author),
                _num(b.stock),
                b.target_stock or DEFAULT_TARGET_STOCK,
                reorder_quantity(b),
            ]
            for b in low_stock
        ),
        18,
    )
    _append_sheet(
        wb,
        RESTOCKS_SHEET,
        RESTOCKS_HEADER,
        (
            [r.id, _num(r.book_id), _text(r.book_name), _num(r.qty_added), *_split_timestamp(r.date, zone)]
            for r in snapshot.restocks
        ),
        18,
    )

    # Saving resets ``modified``; _pin_archive puts it back.
    stamp = generated_at.astimezone(timezone.utc).replace(tzinfo=None)
    wb.properties.created = stamp
    wb.properties.modified = stamp
    wb.properties.title = SUMMARY_TITLE
    return wb


def _pin_archive(content: bytes, generated_at: datetime) -> bytes:
    """Rewrite the saved archive so nothing in it depends on the wall clock.

    openpyxl stamps ``dcterms:modified`` and every zip entry with the time of
    the save; both are set back to ``generated_at``.
    """

    stamp = generated_at.astimezone(timezone.utc)
    modified = stamp.strftime("%Y-%m-%dT%H:%M:%SZ").encode("ascii")
    # Zip timestamps cannot predate 1980.
    date_time = max(stamp.timetuple()[:6], (1980, 1, 1, 0, 0, 0))

    out = BytesIO()
    with ZipFile(BytesIO(content)) as src, ZipFile(out, "w", compression=ZIP_DEFLATED) as dst:
        for entry in src.infolist():
            data = src.read(entry.filename)
            if entry.filename == CORE_PROPS_PATH:
                data = _MODIFIED_RE.sub(rb"\g<1>" + modified + rb"\g<2>", data)
            info = ZipInfo(entry.filename, date_time=date_time)
            info.compress_type = ZIP_DEFLATED
            info.external_attr = entry.external_attr
            dst.writestr(info, data)
    return out.getvalue()


def render_backup(
    snapshot: StoreSnapshot,
    *,
    generated_at: datetime,
    stats: DashboardStats | None = None,
    low_stock: Sequence[Book] | None = None,
    tz: tzinfo | None = None,
) -> bytes:
    wb = build_backup_workbook(snapshot, generated_at=generated_at, stats=stats, low_stock=low_stock, tz=tz)
    buffer = BytesIO()
    wb.save(buffer)
    return _pin_archive(buffer.getvalue(), generated_at)


def create_backup(store, *, now: datetime | None = None, tz: tzinfo | None = None) -> BackupFile:
    """Read the store once and produce the backup workbook bytes.

    Summary and Low Stock are derived from the same snapshot as the data
    sheets, so the file is internally consistent.
    """

    generated_at = now or utcnow()
    snapshot = store.export_raw()
    content = render_backup(snapshot, generated_at=generated_at, tz=tz)
    name = backup_filename(generated_at, tz)
    LOGGER.info(
        "backup.created",
        extra={
            "extra_data": {
                "file_name": name,
                "bytes": len(content),
                "books": len(snapshot.books),
                "sales": len(snapshot.sales),
                "expenses": len(snapshot.expenses),
                "restocks": len(snapshot.restocks),
            }
        },
    )
    return BackupFile(file_name=name, content=content)


__all__ = [
    "BOOKS_HEADER",
    "BackupFile",
    "EXPENSES_HEADER",
    "LOW_STOCK_HEADER",
    "RESTOCKS_HEADER",
    "SALES_HEADER",
    "XLSX_MIME",
    "backup_filename",
    "build_backup_workbook",
    "create_backup",
    "render_backup",
]
