"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from courier.schemas.messages import (
    MarkReadRequest,
    MessageOut,
    PageInfo,
    SendMessageRequest,
    ThreadMessageOut,
    ThreadOut,
    UserRef,
)

__all__ = [
    "MarkReadRequest",
    "MessageOut",
    "PageInfo",
    "SendMessageRequest",
    "ThreadMessageOut",
    "ThreadOut",
    "UserRef",
]
