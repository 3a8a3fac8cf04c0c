"""SQLModel engine singleton and session dependency."""
from typing import Generator

from sqlalchemy import event
from sqlmodel import Session, SQLModel, create_engine

from asanadw.config import get_settings

_engine = None


def configure_sqlite(engine) -> None:
    """Turn on WAL and foreign keys for every new SQLite connection."""

    @event.listens_for(engine, "connect")
    def _set_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
        if engine.url.database not in (None, "", ":memory:"):
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},  # SQLite only; safe for FastAPI
        )
        configure_sqlite(_engine)
        # Import all models so metadata is populated before create_all
        import asanadw.models.sync  # noqa: F401
        import asanadw.models.warehouse  # noqa: F401
        SQLModel.metadata.create_all(_engine)
    return _engine


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
