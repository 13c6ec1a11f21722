"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine and provides
small helpers used by the application and tests. Without a
`DATABASE_URL` the engine points at a local SQLite file `app.db` next to
the `backend/` sources.
"""

from pathlib import Path

from sqlmodel import SQLModel, Session, create_engine

from .config import settings

BASE = Path(__file__).resolve().parent.parent
DB_URL = settings.DATABASE_URL or f"sqlite:///{BASE / 'app.db'}"


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # busy timeout bounds how long a writer waits on a locked database
        return {"check_same_thread": False, "timeout": settings.DB_TIMEOUT_SECONDS}
    return {}


engine = create_engine(
    DB_URL,
    echo=False,
    connect_args=_connect_args(DB_URL),
    pool_pre_ping=not DB_URL.startswith("sqlite"),
)


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    This function is intended for local development and lightweight
    scripts; production deployments should rely on a proper migration
    tool (alembic) instead.
    """
    # models must be imported so their tables are registered on the metadata
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
