import json
import os
import sys
import threading
import time
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from zipfile import ZipFile
from zoneinfo import ZoneInfo

import pytest
from openpyxl import Workbook, load_workbook

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from bookshop.core.errors import InvalidBackupError, StoreWriteError
from bookshop.crud.store import RecordStore
from bookshop.schemas.book import BookCreate
from bookshop.schemas.expense import ExpenseCreate
from bookshop.services import backup, restore
from bookshop.services.json_backup import export_json, import_json
from bookshop.services.restore import UNEXPECTED_ERROR_MESSAGE, parse_int, parse_number, restore_from_excel
from bookshop.services.windows import parse_timestamp

KOLKATA = ZoneInfo("Asia/Kolkata")
START = datetime(2026, 10, 17, 5, 0, tzinfo=timezone.utc)


@pytest.fixture()
def store():
    return RecordStore.from_url("sqlite://", clock=lambda: START)


@pytest.fixture()
def stocked(store):
    store.add_book(BookCreate(name="Dune", author="Herbert", isbn="9780441013593", stock=10, cost_price=5, sell_price=10))
    store.add_book(BookCreate(name="Emma", stock=2, target_stock=4, cost_price=3, sell_price=8))
    store.record_sale(1, 2, 20, 5, "Dune")
    store.record_expense(ExpenseCreate(type="Rent", amount=150, description="October"))
    return store


def _xlsx(sheets: dict) -> bytes:
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


BOOKS = ["id", "name", "author", "isbn", "costPrice", "sellPrice", "stock", "targetStock"]
SALES = ["id", "bookId", "bookName", "qty", "totalAmount", "profit", "Date", "Time"]
EXPENSES = ["id", "type", "amount", "description", "Date", "Time"]


# ---------------------------------------------------------------------------
# Spreadsheet backup
# ---------------------------------------------------------------------------


def test_backup_has_six_sheets_with_fixed_headers(stocked):
    result = backup.create_backup(stocked, now=START, tz=KOLKATA)
    wb = load_workbook(BytesIO(result.content))

    assert wb.sheetnames == ["Summary", "Books", "Sales", "Expenses", "Low Stock", "Restocks"]
    assert [c.value for c in wb["Books"][1]] == list(backup.BOOKS_HEADER)
    assert [c.value for c in wb["Sales"][1]] == list(backup.SALES_HEADER)
    assert [c.value for c in wb["Expenses"][1]] == list(backup.EXPENSES_HEADER)
    assert [c.value for c in wb["Low Stock"][1]] == list(backup.LOW_STOCK_HEADER)
    assert [c.value for c in wb["Restocks"][1]] == list(backup.RESTOCKS_HEADER)
    assert result.file_name == "BookInventory_Backup_2026-10-17_10-30.xlsx"
    assert result.media_type == backup.XLSX_MIME


def test_backup_rows_split_local_date_and_time(stocked):
    wb = load_workbook(BytesIO(backup.create_backup(stocked, now=START, tz=KOLKATA).content))

    sale = [c.value for c in wb["Sales"][2]]
    assert sale == [1, 1, "Dune", 2, 20, 10, "2026-10-17", "10:30:00"]

    book = [c.value for c in wb["Books"][2]]
    assert book[:4] == [1, "Dune", "Herbert", "9780441013593"]
    assert book[6:] == [8, 5]

    low = [[c.value for c in row] for row in wb["Low Stock"].iter_rows(min_row=2)]
    assert len(low) == 1
    assert low[0][0] == "Emma"
    assert low[0][2:] == [2, 4, 2]
    assert wb["Restocks"].max_row == 3


def test_backup_summary_metrics(stocked):
    wb = load_workbook(BytesIO(backup.create_backup(stocked, now=START, tz=KOLKATA).content))
    summary = {row[0]: row[1] for row in wb["Summary"].iter_rows(values_only=True) if row and row[0]}

    assert summary["Book Inventory Backup Summary"] is None
    assert summary["Generated"] == "17/10/2026, 10:30:00 AM"
    assert summary["Total Books"] == 2
    assert summary["Total Stock"] == 10
    assert summary["Gross Profit"] == 10
    assert summary["Total Expenses"] == 150
    assert summary["Net Profit"] == -140
    assert summary["Low Stock Count"] == 1


def test_backup_of_empty_store_still_opens(store):
    wb = load_workbook(BytesIO(backup.create_backup(store, now=START, tz=KOLKATA).content))
    assert wb["Books"].max_row == 1
    assert wb["Sales"].max_row == 1


def test_backup_bytes_do_not_depend_on_the_wall_clock(stocked):
    first = backup.create_backup(stocked, now=START, tz=KOLKATA).content
    # Zip timestamps have two-second resolution.
    time.sleep(2.1)
    second = backup.create_backup(stocked, now=START, tz=KOLKATA).content

    assert first == second
    with ZipFile(BytesIO(first)) as archive:
        assert {info.date_time for info in archive.infolist()} == {(2026, 10, 17, 5, 0, 0)}
        core = archive.read("docProps/core.xml").decode()
    assert "2026-10-17T05:00:00Z</dcterms:modified>" in core
    assert load_workbook(BytesIO(first)).sheetnames[0] == "Summary"


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------


def test_backup_restores_into_fresh_store(stocked):
    content = backup.create_backup(stocked, now=START, tz=KOLKATA).content
    target = RecordStore.from_url("sqlite://")

    result = restore_from_excel(target, content, tz=KOLKATA)

    assert result.status == "success"
    assert result.success is True
    assert result.errors == []
    assert result.imported.books == 2
    assert result.imported.restocks == 2
    assert result.message == "Restored 2 books, 1 sales, 1 expenses, 2 restocks"

    original = stocked.export_raw()
    restored = target.export_raw()
    assert [s.to_record() for s in restored.sales] == [s.to_record() for s in original.sales]
    assert [e.to_record() for e in restored.expenses] == [e.to_record() for e in original.expenses]
    assert [r.to_record() for r in restored.restocks] == [r.to_record() for r in original.restocks]
    strip = lambda b: b.model_dump(exclude={"last_stocked_at"})
    assert [strip(b) for b in restored.books] == [strip(b) for b in original.books]
    assert target.add_book(BookCreate(name="Next")).id == 3


def test_restore_reports_bad_rows_and_keeps_good_ones(store):
    content = _xlsx(
        {
            "books": [
                BOOKS,
                ["abc", "Bad id", "", "", 1, 2, 3, 4],
                [2, "   ", "", "", 1, 2, 3, 4],
                [3, "Good", "Someone", 9780441013593, "₹1,200", "oops", -4, 0],
            ],
            "Sales": [
                SALES,
                [1, 3, "Good", 1, 10, 2, "not-a-date", None],
                [2, "x", "Good", -1, 10, -3, "2026-10-17", "10:30:00"],
            ],
            "EXPENSES": [
                EXPENSES,
                [1, "Food", -5, "refund?", "2026-10-17", "09:00:00"],
                [2, "", 30, None, "2026-10-17", "09:00:00"],
            ],
        }
    )

    result = restore_from_excel(store, content, tz=KOLKATA)

    assert result.status == "success"
    assert result.errors == [
        "Books row 1: Invalid id",
        "Books row 2: Missing name",
        'Sales row 1: Invalid date "not-a-date"',
        "Expenses row 1: Invalid amount",
    ]
    book = store.get_book(3)
    assert (book.isbn, book.cost_price, book.sell_price, book.stock, book.target_stock) == (
        "9780441013593",
        1200,
        0,
        0,
        5,
    )
    sale = store.list_sales()[0]
    assert (sale.book_id, sale.qty, sale.profit) == (0, 0, -3)
    assert sale.date == START
    expense = store.list_expenses()[0]
    assert (expense.id, expense.type, expense.description) == (2, "Misc", "")


def test_restore_keeps_first_duplicate_silently(store):
    content = _xlsx({"Books": [BOOKS, [7, "First"], [7, "Second"], [8, "Other"]]})
    result = restore_from_excel(store, content, tz=KOLKATA)

    assert result.errors == []
    assert [b.name for b in store.list_books()] == ["First", "Other"]


def test_restore_accepts_legacy_iso_date_column(store):
    content = _xlsx({"Sales": [["id", "bookId", "bookName", "qty", "totalAmount", "profit", "date"], [1, 1, "A", 1, 5, 1, "2026-10-17T05:00:00.000Z"]]})
    result = restore_from_excel(store, content, tz=KOLKATA)
    assert result.success
    assert store.list_sales()[0].date == START


def test_restore_without_books_or_sales_sheet_is_structural(stocked):
    before = stocked.export_raw()
    result = restore_from_excel(stocked, _xlsx({"Expenses": [EXPENSES, [1, "Food", 5, "", "2026-10-17", "09:00:00"]]}))

    assert result.status == "invalid"
    assert result.message == "Invalid backup file structure"
    assert result.errors == ['Required sheets "Books" or "Sales" not found in workbook']
    assert stocked.export_raw() == before


def test_restore_of_garbage_bytes_is_rejected(stocked):
    before = stocked.export_raw()
    result = restore_from_excel(stocked, b"definitely not a workbook")

    assert result.status == "invalid"
    assert result.message == "Failed to parse Excel file"
    assert result.errors == ["File is corrupted or not a valid Excel file"]
    assert stocked.export_raw() == before


def test_restore_with_no_valid_rows_leaves_store_alone(stocked):
    before = stocked.export_raw()
    result = restore_from_excel(stocked, _xlsx({"Books": [BOOKS, ["x", "Nope"]]}), tz=KOLKATA)

    assert result.status == "invalid"
    assert result.message == "Restore file contains no valid data"
    assert result.errors == ["Books row 1: Invalid id", "No valid data found to restore"]
    assert stocked.export_raw() == before


def test_restore_rolls_back_when_write_fails(stocked, monkeypatch):
    before = stocked.export_raw()
    real_replace = stocked.replace_all
    calls = []

    def flaky_replace(snapshot):
        calls.append(snapshot)
        if len(calls) == 1:
            raise StoreWriteError("disk full")
        real_replace(snapshot)

    monkeypatch.setattr(stocked, "replace_all", flaky_replace)
    result = restore_from_excel(stocked, _xlsx({"Books": [BOOKS, [1, "Replacement"]]}), tz=KOLKATA)

    assert result.status == "rolled_back"
    assert result.success is False
    assert result.message == "Restore failed, previous data has been kept"
    assert len(calls) == 2
    assert stocked.export_raw() == before


def test_restore_reports_failed_rollback(stocked, monkeypatch):
    def broken_replace(snapshot):
        raise StoreWriteError("disk gone")

    monkeypatch.setattr(stocked, "replace_all", broken_replace)
    result = restore_from_excel(stocked, _xlsx({"Books": [BOOKS, [1, "Replacement"]]}), tz=KOLKATA)

    assert result.status == "rollback_failed"
    assert "data integrity is uncertain" in result.message
    assert any("Rollback failed" in error for error in result.errors)


def test_restore_drops_cells_that_cannot_be_converted(store):
    content = _xlsx(
        {
            "Books": [BOOKS, [1, "A", "", "", "sNaN", 2, 3, 4]],
            "Sales": [
                SALES,
                [1, 1, "A", 1, 10, 2, "0001-01-01", "00:00:00"],
                [2, 1, "A", 1, 10, 2, "2026-10-17", "10:30:00"],
            ],
        }
    )

    result = restore_from_excel(store, content, tz=KOLKATA)

    assert result.status == "success"
    assert result.errors == ['Sales row 1: Invalid date "0001-01-01 00:00:00"']
    assert store.get_book(1).cost_price == 0
    assert [s.id for s in store.list_sales()] == [2]


def test_restore_turns_unexpected_parse_errors_into_a_result(stocked, monkeypatch):
    before = stocked.export_raw()

    def explode(row, index, errors):
        raise RuntimeError("boom")

    monkeypatch.setattr(restore, "validate_book_row", explode)
    result = restore_from_excel(stocked, _xlsx({"Books": [BOOKS, [1, "A"]]}), tz=KOLKATA)

    assert result.status == "invalid"
    assert result.success is False
    assert result.message == UNEXPECTED_ERROR_MESSAGE
    assert result.errors == ["Unexpected error: boom"]
    assert stocked.export_raw() == before


def test_sales_wait_while_a_restore_swaps_data(stocked, monkeypatch):
    real_replace = stocked.replace_all
    calls = []
    blocked = []
    seller = threading.Thread(target=lambda: stocked.record_sale(2, 1, 8, 3, "Emma"))

    def flaky_replace(snapshot):
        calls.append(snapshot)
        if len(calls) == 1:
            seller.start()
            seller.join(timeout=0.3)
            blocked.append(seller.is_alive())
            raise StoreWriteError("disk full")
        real_replace(snapshot)

    monkeypatch.setattr(stocked, "replace_all", flaky_replace)
    result = restore_from_excel(stocked, _xlsx({"Books": [BOOKS, [1, "Replacement"]]}), tz=KOLKATA)
    seller.join(timeout=5)

    assert result.status == "rolled_back"
    assert blocked == [True]
    assert not seller.is_alive()
    # The sale lands after the rollback instead of being wiped by it.
    assert sorted(s.book_name for s in stocked.list_sales()) == ["Dune", "Emma"]
    assert stocked.get_book(2).stock == 1
    assert stocked.get_book(1).name == "Dune"


def test_cell_number_parsing():
    assert parse_int("12") == 12
    assert parse_int(12.9) == 12
    assert parse_int("7.5") == 7
    assert parse_int("7abc") is None
    assert parse_int(True) is None
    assert parse_number("$1,250.50") == 1250.5
    assert parse_number("abc") is None
    assert parse_number(None) is None
    assert parse_number("sNaN") is None
    assert parse_number("NaN") is None


def test_timestamps_outside_the_utc_range_are_unparseable():
    assert parse_timestamp("0001-01-01T00:00:00", KOLKATA) is None
    assert parse_timestamp("9999-12-31T23:59:59-05:00", KOLKATA) is None
    assert parse_timestamp("0001-01-01T06:00:00", KOLKATA) == datetime(1, 1, 1, 6, 0, tzinfo=KOLKATA)


# ---------------------------------------------------------------------------
# JSON backup
# ---------------------------------------------------------------------------


def test_json_export_import_round_trip(stocked):
    text = export_json(stocked, now=START)
    document = json.loads(text)
    assert set(document) == {"books", "sales", "expenses", "restocks", "timestamp"}
    assert document["timestamp"] == "2026-10-17T05:00:00Z"
    assert document["books"][0]["targetStock"] == 5

    target = RecordStore.from_url("sqlite://")
    snapshot = import_json(target, text)
    assert len(snapshot.books) == 2
    assert target.export_raw() == stocked.export_raw()


def test_json_import_requires_books_and_sales(stocked):
    before = stocked.export_raw()
    with pytest.raises(InvalidBackupError) as excinfo:
        import_json(stocked, json.dumps({"books": []}))
    assert excinfo.value.message == "Invalid backup file format"

    with pytest.raises(InvalidBackupError):
        import_json(stocked, "{not json")
    with pytest.raises(InvalidBackupError):
        import_json(stocked, json.dumps({"books": [{"id": "x"}], "sales": []}))
    assert stocked.export_raw() == before


def test_json_import_accepts_missing_optional_collections(store):
    document = {
        "books": [{"id": 4, "name": "Kept", "stock": 1}],
        "sales": [{"id": 9, "bookId": 4, "qty": 1, "totalAmount": 10, "profit": 2, "date": "2026-10-17T05:00:00.000Z"}],
    }
    import_json(store, json.dumps(document))
    assert store.get_book(4).target_stock == 5
    assert store.list_sales()[0].date == START
    assert store.record_sale(4, 1, 10, 1, "Kept").id == 10
    assert store.list_expenses() == []
    assert store.export_raw().restocks == []
