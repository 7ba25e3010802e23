"""Persistence layer: the record store over the slot table."""

from .store import RecordStore

__all__ = ["RecordStore"]
