"""
Infrastructure module: Database and Redis.

Provides:
- Database sessions and transactions (db.py)
- Request/job correlation ids (correlation.py)
- Redis pools, channels and event types (events/)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db,
    get_db_context,
    run_in_transaction,
)
from shared.infrastructure.events import (
    get_redis_pool,
    get_redis_sync_client,
    close_redis_pool,
)

__all__ = [
    # db
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "run_in_transaction",
    # redis
    "get_redis_pool",
    "get_redis_sync_client",
    "close_redis_pool",
]
