"""Sequence assignment helper for message ordering.

Provides atomic sequence number assignment for messages within a thread
using row-level locking (FOR UPDATE) so that the Nth message sent between
two users always sorts Nth, even when creation timestamps collide.

- Each thread has a `next_seq` counter (starts at 1)
- Seq assignment locks the thread row, reads next_seq, increments it
- The returned seq is the one to use for the new message
- Must be called within an existing transaction context
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from courier.db.models import Thread
from courier.logging import get_logger

logger = get_logger(__name__)


def assign_next_message_seq(db: Session, thread_id: UUID) -> int:
    """Atomically assign the next message sequence number for a thread.

    This function MUST be called within an existing transaction context.
    It does NOT open or commit its own transaction.

    Args:
        db: Database session (must be in a transaction)
        thread_id: UUID of the thread to assign seq for

    Returns:
        The sequence number to use for the new message

    Raises:
        ValueError: If the thread does not exist
    """
    thread = db.scalar(
        select(Thread)
        .where(Thread.id == thread_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )

    if thread is None:
        raise ValueError(f"Thread {thread_id} not found")

    current_seq = thread.next_seq
    thread.next_seq = current_seq + 1
    db.flush()

    logger.debug(
        "assigned_message_seq",
        thread_id=str(thread_id),
        seq=current_seq,
    )

    return current_seq
