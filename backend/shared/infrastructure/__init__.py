"""
Infrastructure module: database sessions and the realtime change feed.

- db.py: SQLAlchemy engine, sessions, safe_commit()
- correlation.py: X-Request-ID middleware and logging filter
- events/: Redis pub/sub change notifier
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db,
    safe_commit,
)

__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
    "safe_commit",
]
