"""
QR Inventory Database Configuration
SQLAlchemy setup for the stock ledger store
"""
from contextlib import contextmanager
import logging
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, MetaData, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import settings
from .exceptions import InventoryError, StorageFailureError
from .logging import get_logger

logger = get_logger("database")


def build_engine(url: str, echo: bool = False, **kwargs):
    """Create an engine; SQLite connections get foreign keys switched on"""
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        kwargs["connect_args"] = connect_args
    else:
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_recycle", 3600)

    new_engine = create_engine(url, echo=echo, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(new_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

# Session factory for requests and scripts
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Base class for models, with a naming convention for constraints
Base = declarative_base(metadata=MetaData(naming_convention={
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}))


@contextmanager
def unit_of_work(db: Session, operation: str, log: Optional[logging.Logger] = None) -> Iterator[Session]:
    """
    All-or-nothing block around a group of writes.

    Commits when the block exits cleanly. Any exception rolls back every
    write made in the block; SQLAlchemy errors surface as StorageFailureError.
    """
    try:
        yield db
        db.commit()
    except InventoryError as e:
        db.rollback()
        (log or logger).warning(f"{operation} rejected: {e.code} - {e.message}")
        raise
    except SQLAlchemyError as e:
        db.rollback()
        (log or logger).error(f"Storage failure during {operation}: {e}", exc_info=True)
        raise StorageFailureError(operation) from e
    except Exception:
        db.rollback()
        raise


def init_db(bind=None):
    """Create every ledger table that does not exist yet"""
    try:
        # Registers the models on Base.metadata
        from qr_inventory import models  # noqa: F401

        Base.metadata.create_all(bind=bind or engine)
        logger.info("Ledger schema is up to date")

    except Exception as e:
        logger.error(f"Could not create ledger tables: {e}")
        raise


def check_db_connection() -> bool:
    """Round-trip a trivial query; False when the database is unreachable"""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database ping failed: {e}")
        return False
