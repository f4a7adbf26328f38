"""
Database configuration and session management.
Uses SQLAlchemy 2.0 synchronous sessions.
"""

from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from shared.config.settings import DATABASE_URL, settings

import os

T = TypeVar("T")


def _calculate_pool_size() -> int:
    """
    Calculate pool size based on CPU cores.
    Formula: (2 * CPU cores) + 1, capped at 20.
    """
    cores = os.cpu_count() or 4
    return min(cores * 2 + 1, 20)


# Worker threads and API requests share this engine; each job or request
# checks out its own connection.
engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=_calculate_pool_size(),
    max_overflow=settings.database_pool_max_overflow,
    pool_timeout=settings.database_pool_timeout,
    pool_recycle=1800,  # Recycle connections after 30 minutes
    connect_args={"connect_timeout": 10},
    echo=False,
)

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Usage:
        @router.get("/recipes/{recipe_id}")
        def read_recipe(recipe_id: int, db: Session = Depends(get_db)):
            ...

    The session is automatically closed after the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            RecipeCostCalculator(db, dispatcher).recalculate(recipe_id)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_in_transaction(db: Session, fn: Callable[[], T]) -> T:
    """
    Run ``fn`` and commit its writes as one transaction.

    Any exception raised by ``fn`` or by the commit rolls back every
    change made inside it and is re-raised to the caller.

    Usage:
        result = run_in_transaction(db, lambda: self._apply_costs(recipe))
    """
    try:
        result = fn()
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result
