"""Application factory and top-level wiring for the bookshop ledger.

``create_app`` brings together configuration, the record store, the JSON error
envelope, request-id tracking and the API routers. Tests build their own app
around an in-memory store; ``bookshop.main`` builds the production one.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import AppSettings, get_settings
from .core.errors import (
    InvalidBackupError,
    http_exception_handler,
    invalid_backup_handler,
    validation_exception_handler,
)
from .crud.store import RecordStore
from .middlewares import RequestIdMiddleware
from .routers import books, dashboard, data, expenses, sales


def create_app(store: Optional[RecordStore] = None, settings: Optional[AppSettings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.APP_NAME)
    app.state.settings = settings
    app.state.store = store or RecordStore.from_url(settings.database_url)

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(InvalidBackupError, invalid_backup_handler)

    app.include_router(books.router)
    app.include_router(sales.router)
    app.include_router(expenses.router)
    app.include_router(dashboard.router)
    app.include_router(data.router)

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    return app


__all__ = ["create_app"]
