"""SQLAlchemy engine and session helpers."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# ``Base`` is the parent class for every SQLAlchemy model defined in bookshop/models.
Base = declarative_base()

_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def build_engine(url: str) -> Engine:
    """Create an engine for ``url``.

    SQLite connections are shared with FastAPI worker threads, so
    ``check_same_thread`` is disabled. In-memory databases use a single static
    connection, otherwise every new connection would see an empty database.
    """

    if not url.startswith("sqlite"):
        return create_engine(url)
    kwargs: dict[str, object] = {"connect_args": {"check_same_thread": False}}
    if url in _MEMORY_URLS:
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create missing tables, then bring existing data up to date."""

    # Importing the model registers its table with ``Base.metadata``.
    from ..models import slot as _slot  # noqa: F401
    from .migrate import run_migrations

    Base.metadata.create_all(bind=engine)
    run_migrations(engine)


__all__ = ["Base", "build_engine", "build_session_factory", "init_db"]
