from __future__ import annotations

from fastapi import Request

from ..core.config import AppSettings
from ..crud.store import RecordStore


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_app_settings(request: Request) -> AppSettings:
    return request.app.state.settings
