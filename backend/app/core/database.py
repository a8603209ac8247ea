"""
Database utilities and connection management.

WHAT: SQLite/SQLAlchemy setup shared by every service
WHY: Single source of truth for users, listings, chat and notifications
HOW: SQLAlchemy sync engine with WAL mode, transactional session scope
"""

from sqlalchemy import create_engine, text, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from contextlib import contextmanager
from pathlib import Path

from .config import settings
from ..utils.exceptions import StorageError
from ..utils.logger import get_logger

logger = get_logger(__name__)

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# Ensure data directory exists
if _is_sqlite and ":memory:" not in settings.DATABASE_URL:
    data_dir = Path(settings.DATABASE_URL.replace("sqlite:///", "")).parent
    if not data_dir.exists():
        data_dir.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    echo=settings.DEBUG,
    future=True
)


if _is_sqlite:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable WAL mode and FK enforcement on every connection."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False
)

# Base for models
Base = declarative_base()


@contextmanager
def get_db():
    """
    Transactional session scope.

    Everything done inside one ``with get_db()`` block commits together or
    not at all. Integrity errors propagate unchanged so callers can map them
    to domain errors; any other database failure becomes StorageError.

    Usage:
        with get_db() as db:
            # use db session
            pass

    Yields:
        Session: SQLAlchemy session
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except IntegrityError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error: {e}")
        raise StorageError("Database operation failed") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ping_database() -> dict:
    """
    Check database connectivity.

    Returns:
        Dict with status and info
    """
    try:
        with engine.connect() as conn:
            result = conn.execute(text("SELECT 1"))
            result.fetchone()

        return {
            "available": True,
            "url": settings.DATABASE_URL,
            "error": None
        }
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return {
            "available": False,
            "url": settings.DATABASE_URL,
            "error": str(e)
        }


def init_db():
    """Create all tables."""
    # Import models so they register on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized")


def close_db():
    """Close database connections."""
    engine.dispose()
    logger.info("Database connections closed")
