"""FastAPI dependencies for route handlers.

Common dependencies like database sessions and listing settings.
"""

from fastapi import Query

from courier.config import get_settings
from courier.db.session import get_db, get_session_factory

__all__ = ["get_db", "get_page", "get_per_page", "get_session_factory"]


def get_page(page: int = Query(default=1, description="1-indexed page number")) -> int:
    """Page number query parameter.

    Range checking is done by the service so it reports through the
    standard error body.
    """
    return page


def get_per_page() -> int:
    """Configured page size for thread and inbox listings."""
    return get_settings().messages_page_size
