"""SQLAlchemy engine and session factory configuration."""

from __future__ import annotations

from pathlib import Path

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.orm import sessionmaker

from app.backend.src.core.config import get_settings

LOGGER = structlog.get_logger(__name__)
PROJECT_ROOT = Path(__file__).resolve().parents[4]


def _normalize_database_url(raw_url: str) -> URL:
    """Return an absolute :class:`~sqlalchemy.engine.URL` for SQLite databases."""

    url = make_url(raw_url)
    if not url.drivername.startswith("sqlite"):
        return url

    database = url.database or ""
    if database in {"", ":memory:"}:
        return url

    db_path = Path(database)
    if db_path.is_absolute():
        resolved = db_path
    else:
        resolved = PROJECT_ROOT / db_path

    resolved = resolved.resolve()
    if resolved != db_path:
        LOGGER.info(
            "database_path_normalized",
            original=str(db_path),
            resolved=str(resolved),
        )

    return url.set(database=str(resolved))


def _engine_kwargs(url: URL) -> dict[str, object]:
    if url.drivername.startswith("sqlite"):
        # TestClient and the threadpool share connections across threads.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


_settings = get_settings()
_database_url = _normalize_database_url(_settings.database_url)
engine = create_engine(_database_url, future=True, **_engine_kwargs(_database_url))

if _database_url.drivername.startswith("sqlite"):

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)

LOGGER.info("database_engine_initialized", url=str(_database_url))

__all__ = ["engine", "SessionLocal"]
