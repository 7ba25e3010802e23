"""Key-value table backing the record store.

Each row is one named slot (``books``, ``sales``, ``expenses``, ``restocks``)
holding the JSON-serialised list of that collection.
"""

from __future__ import annotations

from sqlalchemy import Column, Text

from ..db.session import Base


class StoreSlot(Base):
    """One persisted collection, stored whole."""

    __tablename__ = "store_slots"

    name = Column(Text, primary_key=True)
    payload = Column(Text, nullable=False, default="[]")
    updated_at = Column(Text, nullable=False)


__all__ = ["StoreSlot"]
