"""SQLModel database engine and session management."""

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from journal.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine, applying SQLite's thread flag when needed."""
    connect_args = kwargs.pop("connect_args", {})
    # SQLite needs check_same_thread=False; PostgreSQL does not
    if database_url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    return create_engine(database_url, echo=False, connect_args=connect_args, **kwargs)


engine = build_engine(settings.database_url)


def create_db_and_tables(bind: Engine | None = None):
    """Create all tables. Called on startup."""
    from journal import models  # noqa: F401

    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    tables = inspect(bind).get_table_names()
    logger.info(f"Database ready ({len(tables)} tables)")
