"""Database module for Courier.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from courier.db.engine import create_db_engine, create_schema, get_engine
from courier.db.models import Base, Message, Thread, User
from courier.db.session import get_db, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "create_schema",
    "get_engine",
    "get_db",
    "transaction",
    # Models
    "Base",
    "User",
    "Thread",
    "Message",
]
