"""SQLAlchemy ORM models for Courier.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Column types are portable (PostgreSQL in deployment, SQLite for local runs).
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    func,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class User(Base):
    """User account model.

    The user ID matches the identity provider's subject (sub claim).
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    username: Mapped[str | None] = mapped_column(Text, nullable=True, unique=True)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    public: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )


class Thread(Base):
    """Latest-message summary for a pair of users.

    The pair is stored unordered: user_a_id is always the smaller UUID.
    user_from_id / user_to_id / read describe the most recent message.
    next_seq is the per-pair message sequence counter.
    """

    __tablename__ = "threads"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_a_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user_b_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user_from_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    user_to_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    last_message_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey(
            "messages.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_threads_last_message_id",
        ),
        nullable=True,
    )
    next_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_a_id", "user_b_id", name="uix_threads_pair"),
        CheckConstraint("user_a_id <> user_b_id", name="ck_threads_distinct_users"),
        CheckConstraint("next_seq >= 1", name="ck_threads_next_seq_positive"),
        Index("ix_threads_user_a_updated", "user_a_id", "updated_at"),
        Index("ix_threads_user_b_updated", "user_b_id", "updated_at"),
    )

    # Relationships
    user_from: Mapped["User | None"] = relationship("User", foreign_keys=[user_from_id])
    user_to: Mapped["User | None"] = relationship("User", foreign_keys=[user_to_id])
    last_message: Mapped["Message | None"] = relationship(
        "Message", foreign_keys=[last_message_id], post_update=True
    )
    messages: Mapped[list["Message"]] = relationship(
        "Message",
        foreign_keys="Message.thread_id",
        back_populates="thread",
        cascade="all, delete-orphan",
    )


class Message(Base):
    """A single message from one user to another."""

    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    thread_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("threads.id", ondelete="CASCADE"), nullable=False
    )
    user_from_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user_to_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    notified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("seq >= 1", name="ck_messages_seq_positive"),
        CheckConstraint("user_from_id <> user_to_id", name="ck_messages_distinct_users"),
        UniqueConstraint("thread_id", "seq", name="uix_messages_thread_seq"),
        Index("ix_messages_user_to_read", "user_to_id", "read"),
    )

    # Relationships
    thread: Mapped["Thread"] = relationship(
        "Thread", foreign_keys=[thread_id], back_populates="messages"
    )
    user_from: Mapped["User"] = relationship("User", foreign_keys=[user_from_id])
    user_to: Mapped["User"] = relationship("User", foreign_keys=[user_to_id])
