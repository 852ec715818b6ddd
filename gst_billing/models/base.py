"""
Database engine, session management, and base model.

This module is the foundation for all database operations.
Every model inherits from Base. Every request gets a session
from get_db(). Every multi-write operation runs inside atomic().
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, DeclarativeBase

from gst_billing.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# --- Engine ---
# pool_pre_ping=True tests connections before using them,
# which handles cases where the database restarted or a
# connection went stale.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)

# --- Session Factory ---
# autocommit=False means we explicitly control when changes
# are saved. Invoice, journal and balance writes must land
# together or not at all.
# autoflush=False means SQLAlchemy won't send SQL to the
# database until we explicitly flush or commit.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block as one unit of work.

    Commits when the block finishes, rolls back and re-raises on
    any exception. Nothing written inside the block survives a
    failure, so callers never see "invoice finalized but journal
    not posted".
    """
    try:
        yield db
        db.commit()
    except Exception:
        logger.warning("Unit of work rolled back", exc_info=True)
        db.rollback()
        raise


# --- Dependency for FastAPI ---
def get_db():
    """
    Provide a database session for a single request.

    The try/finally pattern ensures the session is always
    closed, preventing connection leaks.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
