"""Message and thread Pydantic schemas.

Response field names follow the wire format existing inbox clients read:
camelCase keys and "_id" for identifiers. Always dump with by_alias=True.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# Max content length
MAX_MESSAGE_CONTENT_LENGTH = 20000

# Max message ids accepted by a single mark-read call
MAX_MARK_READ_IDS = 100

# Highest page number a listing accepts; keeps the row offset within a 64-bit integer
MAX_PAGE = 1_000_000

# Excerpt length for inbox rows
EXCERPT_LENGTH = 100


# =============================================================================
# Response Schemas
# =============================================================================


class UserRef(BaseModel):
    """Lightweight user reference embedded in messages and threads."""

    id: UUID = Field(serialization_alias="_id")
    username: str | None = None
    display_name: str | None = Field(default=None, serialization_alias="displayName")

    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    """Response schema for a message.

    Content is immutable after creation; only read/notified change.
    """

    id: UUID = Field(serialization_alias="_id")
    content: str
    user_from: UserRef = Field(serialization_alias="userFrom")
    user_to: UserRef = Field(serialization_alias="userTo")
    notified: bool
    read: bool
    created: datetime

    model_config = ConfigDict(from_attributes=True)


class ThreadMessageOut(BaseModel):
    """Latest message summary shown on an inbox row."""

    id: UUID = Field(serialization_alias="_id")
    content: str
    excerpt: str


class ThreadOut(BaseModel):
    """Response schema for an inbox row (one per correspondent)."""

    id: UUID = Field(serialization_alias="_id")
    user_from: UserRef = Field(serialization_alias="userFrom")
    user_to: UserRef = Field(serialization_alias="userTo")
    message: ThreadMessageOut
    read: bool
    updated: datetime


class PageInfo(BaseModel):
    """Pagination information for list responses."""

    page: int
    per_page: int
    total: int

    @property
    def has_next(self) -> bool:
        return self.page * self.per_page < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1


# =============================================================================
# Request Schemas
# =============================================================================


class SendMessageRequest(BaseModel):
    """Request schema for sending a message.

    - content: non-empty after stripping, max 20,000 chars (checked by the service)
    - userTo: recipient user id
    """

    content: str
    user_to: UUID = Field(alias="userTo")

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class MarkReadRequest(BaseModel):
    """Request schema for marking received messages as read."""

    message_ids: list[UUID] = Field(alias="messageIds", max_length=MAX_MARK_READ_IDS)

    model_config = ConfigDict(populate_by_name=True)
