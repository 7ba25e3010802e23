"""Small idempotent data migrations for the slot table."""

from __future__ import annotations

import json
import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine

from ..schemas.book import DEFAULT_TARGET_STOCK

logger = logging.getLogger(__name__)

# Slot keys written by the earlier on-device app.
LEGACY_SLOT_KEYS: dict[str, str] = {
    "@bookshop_books": "books",
    "@bookshop_sales": "sales",
    "@bookshop_expenses": "expenses",
    "@bookshop_restocks": "restocks",
}


def _slot_names(conn: Connection) -> set[str]:
    return {row[0] for row in conn.execute(text("SELECT name FROM store_slots"))}


def _rename_legacy_slots(conn: Connection) -> None:
    """Move legacy-keyed slots to their canonical names when that name is free."""

    names = _slot_names(conn)
    for legacy, canonical in LEGACY_SLOT_KEYS.items():
        if legacy not in names:
            continue
        if canonical in names:
            logger.warning(
                "migrate.legacy_slot_shadowed",
                extra={"extra_data": {"legacy": legacy, "slot": canonical}},
            )
            continue
        conn.execute(
            text("UPDATE store_slots SET name = :canonical WHERE name = :legacy"),
            {"canonical": canonical, "legacy": legacy},
        )
        logger.info("migrate.legacy_slot_renamed", extra={"extra_data": {"legacy": legacy, "slot": canonical}})


def _backfill_target_stock(conn: Connection) -> None:
    """Books saved before reorder thresholds existed get the default threshold."""

    row = conn.execute(text("SELECT payload FROM store_slots WHERE name = 'books'")).first()
    if row is None or not row[0]:
        return
    try:
        books = json.loads(row[0])
    except ValueError:
        logger.error("migrate.books_payload_unreadable")
        return
    if not isinstance(books, list):
        return

    changed = False
    for book in books:
        if isinstance(book, dict) and not book.get("targetStock"):
            book["targetStock"] = DEFAULT_TARGET_STOCK
            changed = True
    if changed:
        conn.execute(
            text("UPDATE store_slots SET payload = :payload WHERE name = 'books'"),
            {"payload": json.dumps(books, separators=(",", ":"))},
        )


def run_migrations(engine: Engine) -> None:
    """Bring persisted slots up to date with what the store expects."""

    if not inspect(engine).has_table("store_slots"):
        # Table absent -> Base.metadata.create_all will create a fresh schema.
        return
    with engine.begin() as conn:
        _rename_legacy_slots(conn)
        _backfill_target_stock(conn)


__all__ = ["LEGACY_SLOT_KEYS", "run_migrations"]
