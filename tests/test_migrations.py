import json
import os
import sys
from pathlib import Path

from sqlalchemy import text

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from bookshop.crud.store import RecordStore
from bookshop.db import migrate
from bookshop.db.session import Base, build_engine, build_session_factory, init_db
from bookshop.models import slot as slot_model  # noqa: F401
from bookshop.schemas.book import DEFAULT_TARGET_STOCK


def _seed(engine, rows):
    Base.metadata.create_all(bind=engine)
    with engine.begin() as conn:
        for name, payload in rows.items():
            conn.execute(
                text("INSERT INTO store_slots (name, payload, updated_at) VALUES (:name, :payload, '')"),
                {"name": name, "payload": json.dumps(payload)},
            )


def test_legacy_slot_names_are_renamed_and_thresholds_backfilled(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'legacy.db'}")
    _seed(
        engine,
        {
            "@bookshop_books": [
                {"id": 1, "name": "Old", "stock": 2},
                {"id": 2, "name": "Set", "stock": 9, "targetStock": 8},
            ],
            "@bookshop_sales": [
                {"id": 5, "bookId": 1, "bookName": "Old", "qty": 1, "totalAmount": 10, "profit": 3, "date": "2024-01-02T03:04:05.000Z"}
            ],
        },
    )

    init_db(engine)
    init_db(engine)

    with engine.connect() as conn:
        names = {row[0] for row in conn.execute(text("SELECT name FROM store_slots"))}
        books = json.loads(conn.execute(text("SELECT payload FROM store_slots WHERE name = 'books'")).scalar_one())
    assert names == {"books", "sales"}
    assert [b["targetStock"] for b in books] == [5, 8]

    store = RecordStore(build_session_factory(engine))
    assert [b.name for b in store.get_low_stock_books()] == ["Old"]
    assert store.record_sale(1, 1, 10, 1, "Old").id == 6


def test_canonical_slot_wins_over_legacy(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'both.db'}")
    _seed(
        engine,
        {
            "books": [{"id": 1, "name": "Current", "stock": 1, "targetStock": 5}],
            "@bookshop_books": [{"id": 1, "name": "Stale", "stock": 1}],
        },
    )

    init_db(engine)

    store = RecordStore(build_session_factory(engine))
    assert [b.name for b in store.list_books()] == ["Current"]


def test_missing_slots_read_as_empty():
    store = RecordStore.from_url("sqlite://")
    assert store.counts() == {"books": 0, "sales": 0, "expenses": 0, "restocks": 0}
    assert store.list_restocks() == []


def test_backfill_uses_the_book_schema_default(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'threshold.db'}")
    _seed(engine, {"books": [{"id": 1, "name": "Bare", "stock": 2}]})

    init_db(engine)

    with engine.connect() as conn:
        books = json.loads(conn.execute(text("SELECT payload FROM store_slots WHERE name = 'books'")).scalar_one())
    assert books[0]["targetStock"] == DEFAULT_TARGET_STOCK
    assert RecordStore(build_session_factory(engine)).get_book(1).target_stock == DEFAULT_TARGET_STOCK


def test_migrate_shares_the_schema_threshold():
    assert migrate.DEFAULT_TARGET_STOCK is DEFAULT_TARGET_STOCK
