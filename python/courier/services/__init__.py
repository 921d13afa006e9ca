"""Business logic services.

This module contains service-layer functions that implement business logic.
Services are called by route handlers and orchestrate database operations.
"""

from courier.services.bootstrap import ensure_user
from courier.services.messages import (
    count_unread,
    list_inbox,
    list_thread,
    mark_read,
    send_message,
)

__all__ = [
    "ensure_user",
    "send_message",
    "list_thread",
    "list_inbox",
    "mark_read",
    "count_unread",
]
