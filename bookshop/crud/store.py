"""Record store: the four persisted collections and every mutation on them.

Each collection lives whole in one ``store_slots`` row and is updated with a
read-modify-write cycle. A per-slot lock serialises those cycles so two callers
cannot lose each other's update, and every operation that touches more than one
slot (a sale plus its stock decrement, a book plus its restock entry, a full
replace) commits all of its slots together.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import ExitStack, contextmanager
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Iterator, Sequence

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.errors import StoreWriteError
from ..db.session import build_engine, build_session_factory, init_db
from ..models.slot import StoreSlot
from ..schemas.backup import StoreSnapshot
from ..schemas.book import Book, BookCreate, StockValueItem
from ..schemas.dashboard import DashboardStats
from ..schemas.expense import Expense, ExpenseCreate
from ..schemas.restock import Restock
from ..schemas.sale import Sale
from ..services import analytics
from ..services.windows import day_window, utcnow

logger = logging.getLogger(__name__)

SLOT_BOOKS = "books"
SLOT_SALES = "sales"
SLOT_EXPENSES = "expenses"
SLOT_RESTOCKS = "restocks"

# Lock acquisition order for multi-slot operations.
SLOT_ORDER = (SLOT_BOOKS, SLOT_SALES, SLOT_EXPENSES, SLOT_RESTOCKS)

SLOT_MODELS: dict[str, type[BaseModel]] = {
    SLOT_BOOKS: Book,
    SLOT_SALES: Sale,
    SLOT_EXPENSES: Expense,
    SLOT_RESTOCKS: Restock,
}


def _log(event: str, **data: object) -> None:
    logger.info(event, extra={"extra_data": data})


class RecordStore:
    """Durable home of books, sales, expenses and restocks.

    Next-id counters are instance state: they are recomputed from the stored
    data when the store is created and again after ``replace_all`` or
    ``clear_all``.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or utcnow
        self._locks = {slot: threading.RLock() for slot in SLOT_ORDER}
        self._next_ids: dict[str, int] = {slot: 1 for slot in SLOT_ORDER}
        self._load_ids()

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RecordStore":
        engine = build_engine(url)
        init_db(engine)
        return cls(build_session_factory(engine), **kwargs)

    # ------------------------------------------------------------------
    # Slot plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self, *slots: str) -> Iterator[None]:
        with ExitStack() as stack:
            for slot in SLOT_ORDER:
                if slot in slots:
                    stack.enter_context(self._locks[slot])
            yield

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold every slot lock so a multi-step swap sees no interleaved writes."""

        with self._locked(*SLOT_ORDER):
            yield

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._session_factory() as db:
            yield db

    def _commit(self, db: Session, action: str) -> None:
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("store.write_failed", extra={"extra_data": {"action": action}}, exc_info=True)
            raise StoreWriteError(f"{action} failed: {exc}") from exc

    def _read(self, db: Session, slot: str) -> list:
        row = db.get(StoreSlot, slot)
        if row is None or not row.payload:
            return []
        raw = json.loads(row.payload)
        if not isinstance(raw, list):
            return []
        model = SLOT_MODELS[slot]
        return [model.model_validate(item) for item in raw]

    def _write(self, db: Session, slot: str, items: Sequence[BaseModel]) -> None:
        payload = json.dumps([item.model_dump(mode="json", by_alias=True) for item in items], separators=(",", ":"))
        stamp = self._now().isoformat().replace("+00:00", "Z")
        row = db.get(StoreSlot, slot)
        if row is None:
            db.add(StoreSlot(name=slot, payload=payload, updated_at=stamp))
        else:
            row.payload = payload
            row.updated_at = stamp

    def _fetch(self, slot: str) -> list:
        with self._session() as db:
            return self._read(db, slot)

    def _now(self) -> datetime:
        moment = self._clock()
        if moment.tzinfo is None:
            return moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc)

    def _load_ids(self) -> None:
        with self._session() as db:
            for slot in SLOT_ORDER:
                self._next_ids[slot] = max((item.id for item in self._read(db, slot)), default=0) + 1

    def _take_id(self, slot: str, existing: Sequence[BaseModel]) -> int:
        # Never hand out an id at or below one already stored.
        candidate = max(self._next_ids[slot], max((item.id for item in existing), default=0) + 1)
        self._next_ids[slot] = candidate + 1
        return candidate

    def _restock_entry(self, restocks: list[Restock], book: Book, qty: int, when: datetime) -> Restock:
        entry = Restock(
            id=self._take_id(SLOT_RESTOCKS, restocks),
            book_id=book.id,
            book_name=book.name,
            qty_added=qty,
            date=when,
        )
        restocks.append(entry)
        return entry

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    def list_books(self) -> list[Book]:
        return analytics.low_stock_first(self._fetch(SLOT_BOOKS))

    def search_books(self, query: str) -> list[Book]:
        needle = (query or "").strip().casefold()
        books = self._fetch(SLOT_BOOKS)
        if needle:
            books = [b for b in books if needle in b.name.casefold() or needle in b.author.casefold()]
        return analytics.low_stock_first(books)

    def get_book(self, book_id: int) -> Book | None:
        return next((book for book in self._fetch(SLOT_BOOKS) if book.id == book_id), None)

    def add_book(self, data: BookCreate) -> Book:
        """Persist a new book and record its opening stock as a restock."""

        with self._locked(SLOT_BOOKS, SLOT_RESTOCKS), self._session() as db:
            books = self._read(db, SLOT_BOOKS)
            now = self._now()
            book = Book(id=self._take_id(SLOT_BOOKS, books), last_stocked_at=now, **data.model_dump())
            books.append(book)
            self._write(db, SLOT_BOOKS, books)
            if book.stock > 0:
                restocks = self._read(db, SLOT_RESTOCKS)
                self._restock_entry(restocks, book, book.stock, now)
                self._write(db, SLOT_RESTOCKS, restocks)
            self._commit(db, "add_book")
        _log("store.book_added", book_id=book.id, stock=book.stock)
        return book

    def update_book(self, book: Book) -> bool:
        """Replace the stored book with the same id.

        A missing id is a silent no-op (returns ``False``). A stock increase is
        treated like any other top-up: ``last_stocked_at`` moves and a restock
        entry is written.
        """

        with self._locked(SLOT_BOOKS, SLOT_RESTOCKS), self._session() as db:
            books = self._read(db, SLOT_BOOKS)
            idx = next((i for i, existing in enumerate(books) if existing.id == book.id), None)
            if idx is None:
                return False
            previous = books[idx]
            added = book.stock - previous.stock
            if added > 0:
                now = self._now()
                book = book.model_copy(update={"last_stocked_at": now})
                restocks = self._read(db, SLOT_RESTOCKS)
                self._restock_entry(restocks, book, added, now)
                self._write(db, SLOT_RESTOCKS, restocks)
            books[idx] = book
            self._write(db, SLOT_BOOKS, books)
            self._commit(db, "update_book")
        _log("store.book_updated", book_id=book.id)
        return True

    def delete_book(self, book_id: int) -> bool:
        """Remove a book. Sales and restocks that reference it are kept."""

        with self._locked(SLOT_BOOKS), self._session() as db:
            books = self._read(db, SLOT_BOOKS)
            remaining = [book for book in books if book.id != book_id]
            if len(remaining) == len(books):
                return False
            self._write(db, SLOT_BOOKS, remaining)
            self._commit(db, "delete_book")
        _log("store.book_deleted", book_id=book_id)
        return True

    def _apply_stock_delta(self, db: Session, books: list[Book], book_id: int, delta: int) -> Book | None:
        idx = next((i for i, book in enumerate(books) if book.id == book_id), None)
        if idx is None:
            return None
        book = books[idx]
        update: dict[str, object] = {"stock": max(0, book.stock + delta)}
        if delta > 0:
            now = self._now()
            update["last_stocked_at"] = now
            restocks = self._read(db, SLOT_RESTOCKS)
            self._restock_entry(restocks, book, delta, now)
            self._write(db, SLOT_RESTOCKS, restocks)
        books[idx] = book.model_copy(update=update)
        self._write(db, SLOT_BOOKS, books)
        return books[idx]

    def adjust_stock(self, book_id: int, delta: int) -> Book | None:
        """``stock = max(0, stock + delta)``; positive deltas are logged as restocks."""

        with self._locked(SLOT_BOOKS, SLOT_RESTOCKS), self._session() as db:
            books = self._read(db, SLOT_BOOKS)
            updated = self._apply_stock_delta(db, books, book_id, delta)
            if updated is None:
                return None
            self._commit(db, "adjust_stock")
        _log("store.stock_adjusted", book_id=book_id, delta=delta, stock=updated.stock)
        return updated

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def record_sale(
        self,
        book_id: int,
        qty: int,
        total_amount: float,
        cost_price: float,
        book_name: str,
    ) -> Sale:
        """Record a sale and take its quantity off the shelf in one commit.

        ``profit`` is fixed now as ``total_amount - qty * cost_price``. A sale
        against an unknown book is still recorded; there is just no stock to
        decrement.
        """

        if qty <= 0:
            raise ValueError("qty must be positive")
        if total_amount < 0:
            raise ValueError("total_amount must not be negative")

        with self._locked(SLOT_BOOKS, SLOT_SALES, SLOT_RESTOCKS), self._session() as db:
            sales = self._read(db, SLOT_SALES)
            sale = Sale(
                id=self._take_id(SLOT_SALES, sales),
                book_id=book_id,
                book_name=book_name,
                qty=qty,
                total_amount=total_amount,
                profit=total_amount - qty * cost_price,
                date=self._now(),
            )
            sales.append(sale)
            self._write(db, SLOT_SALES, sales)
            books = self._read(db, SLOT_BOOKS)
            if self._apply_stock_delta(db, books, book_id, -qty) is None:
                logger.warning("store.sale_orphaned", extra={"extra_data": {"book_id": book_id, "sale_id": sale.id}})
            self._commit(db, "record_sale")
        _log("store.sale_recorded", sale_id=sale.id, book_id=book_id, qty=qty, total=total_amount)
        return sale

    def list_sales(self) -> list[Sale]:
        return analytics.newest_first(self._fetch(SLOT_SALES))

    def get_sales_history(self, limit: int = 50) -> list[Sale]:
        return self.list_sales()[:limit]

    def get_sales_in_window(self, start: datetime, end: datetime | None = None) -> list[Sale]:
        return analytics.select_window(self._fetch(SLOT_SALES), start, end)

    def get_sales_from_date(self, from_date: datetime) -> list[Sale]:
        return self.get_sales_in_window(from_date)

    def get_sales_for_day(self, day: date | datetime, tz: tzinfo | None = None) -> list[Sale]:
        return self.get_sales_in_window(*day_window(day, tz))

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def list_expenses(self) -> list[Expense]:
        return analytics.newest_first(self._fetch(SLOT_EXPENSES))

    def get_expense(self, expense_id: int) -> Expense | None:
        return next((e for e in self._fetch(SLOT_EXPENSES) if e.id == expense_id), None)

    def record_expense(self, data: ExpenseCreate) -> Expense:
        with self._locked(SLOT_EXPENSES), self._session() as db:
            expenses = self._read(db, SLOT_EXPENSES)
            expense = Expense(
                id=self._take_id(SLOT_EXPENSES, expenses),
                type=data.type,
                amount=data.amount,
                description=data.description,
                date=data.date or self._now(),
            )
            expenses.append(expense)
            self._write(db, SLOT_EXPENSES, expenses)
            self._commit(db, "record_expense")
        _log("store.expense_recorded", expense_id=expense.id, type=expense.type, amount=expense.amount)
        return expense

    def update_expense(self, expense: Expense) -> bool:
        with self._locked(SLOT_EXPENSES), self._session() as db:
            expenses = self._read(db, SLOT_EXPENSES)
            idx = next((i for i, existing in enumerate(expenses) if existing.id == expense.id), None)
            if idx is None:
                return False
            expenses[idx] = expense
            self._write(db, SLOT_EXPENSES, expenses)
            self._commit(db, "update_expense")
        _log("store.expense_updated", expense_id=expense.id)
        return True

    def delete_expense(self, expense_id: int) -> bool:
        with self._locked(SLOT_EXPENSES), self._session() as db:
            expenses = self._read(db, SLOT_EXPENSES)
            remaining = [e for e in expenses if e.id != expense_id]
            if len(remaining) == len(expenses):
                return False
            self._write(db, SLOT_EXPENSES, remaining)
            self._commit(db, "delete_expense")
        _log("store.expense_deleted", expense_id=expense_id)
        return True

    def get_expenses_in_window(self, start: datetime, end: datetime | None = None) -> list[Expense]:
        return analytics.select_window(self._fetch(SLOT_EXPENSES), start, end)

    def get_expenses_from_date(self, from_date: datetime) -> list[Expense]:
        return self.get_expenses_in_window(from_date)

    def get_expenses_for_day(self, day: date | datetime, tz: tzinfo | None = None) -> list[Expense]:
        return self.get_expenses_in_window(*day_window(day, tz))

    # ------------------------------------------------------------------
    # Restocks
    # ------------------------------------------------------------------

    def list_restocks(self) -> list[Restock]:
        return analytics.newest_first(self._fetch(SLOT_RESTOCKS))

    # ------------------------------------------------------------------
    # Derived reads
    # ------------------------------------------------------------------

    def get_dashboard_stats(self) -> DashboardStats:
        snapshot = self.export_raw()
        return analytics.dashboard_stats(snapshot.books, snapshot.sales, snapshot.expenses)

    def get_stock_value_breakdown(self) -> list[StockValueItem]:
        return analytics.stock_value_breakdown(self._fetch(SLOT_BOOKS))

    def get_low_stock_books(self) -> list[Book]:
        return analytics.low_stock_books(self._fetch(SLOT_BOOKS))

    def counts(self) -> dict[str, int]:
        snapshot = self.export_raw()
        return {
            SLOT_BOOKS: len(snapshot.books),
            SLOT_SALES: len(snapshot.sales),
            SLOT_EXPENSES: len(snapshot.expenses),
            SLOT_RESTOCKS: len(snapshot.restocks),
        }

    # ------------------------------------------------------------------
    # Whole-store operations
    # ------------------------------------------------------------------

    def export_raw(self) -> StoreSnapshot:
        """Consistent copy of all four collections, read in one session."""

        with self._session() as db:
            return StoreSnapshot(
                books=self._read(db, SLOT_BOOKS),
                sales=self._read(db, SLOT_SALES),
                expenses=self._read(db, SLOT_EXPENSES),
                restocks=self._read(db, SLOT_RESTOCKS),
            )

    get_raw_data = export_raw

    def replace_all(self, snapshot: StoreSnapshot) -> None:
        """Overwrite every collection in a single commit and reset the id counters."""

        collections = {
            SLOT_BOOKS: snapshot.books,
            SLOT_SALES: snapshot.sales,
            SLOT_EXPENSES: snapshot.expenses,
            SLOT_RESTOCKS: snapshot.restocks,
        }
        with self._locked(*SLOT_ORDER), self._session() as db:
            for slot, items in collections.items():
                self._write(db, slot, items)
            self._commit(db, "replace_all")
            for slot, items in collections.items():
                self._next_ids[slot] = max((item.id for item in items), default=0) + 1
        _log("store.replaced", **{slot: len(items) for slot, items in collections.items()})

    def clear_all(self) -> None:
        with self._locked(*SLOT_ORDER), self._session() as db:
            for slot in SLOT_ORDER:
                self._write(db, slot, [])
            self._commit(db, "clear_all")
            self._next_ids = {slot: 1 for slot in SLOT_ORDER}
        _log("store.cleared")


__all__ = [
    "RecordStore",
    "SLOT_BOOKS",
    "SLOT_EXPENSES",
    "SLOT_ORDER",
    "SLOT_RESTOCKS",
    "SLOT_SALES",
]
