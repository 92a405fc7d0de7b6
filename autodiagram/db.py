"""Engine and session factory for the SQL key/value backend."""
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from autodiagram.utils.config import settings


class Base(DeclarativeBase):
    pass


def _connect_args(url: str) -> dict:
    # Sync endpoints run in a threadpool; SQLite connections must cross threads.
    if make_url(url).get_backend_name() == "sqlite":
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=_connect_args(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def create_schema() -> None:
    # Import registers the table on Base.metadata.
    from autodiagram import db_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
