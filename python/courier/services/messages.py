"""Message and inbox service layer.

Implements user-to-user messaging:
- send_message: create a message and refresh the pair's Thread
- list_thread: one pair's messages, newest first, page-number pagination
- list_inbox: the viewer's threads, most recently active first
- mark_read / count_unread: read tracking for received messages

Service functions correspond 1:1 with route handlers.
Routes are transport-only and call exactly one service function.

Ordering: messages sort by (seq DESC, id DESC). seq is assigned per thread
under a row lock, so the order never depends on timestamp resolution.
"""

from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from courier.config import MESSAGES_PER_PAGE
from courier.db.models import Message, Thread, User, utc_now
from courier.db.session import transaction
from courier.errors import (
    SELF_MESSAGE_FORBIDDEN_MESSAGE,
    ApiErrorCode,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from courier.logging import get_logger
from courier.schemas.messages import (
    EXCERPT_LENGTH,
    MAX_MESSAGE_CONTENT_LENGTH,
    MAX_PAGE,
    MessageOut,
    PageInfo,
    ThreadMessageOut,
    ThreadOut,
    UserRef,
)
from courier.services.seq import assign_next_message_seq

logger = get_logger(__name__)


# =============================================================================
# Helper Functions
# =============================================================================


def ordered_pair(first: UUID, second: UUID) -> tuple[UUID, UUID]:
    """Return the pair as stored on a thread (smaller id first)."""
    return (first, second) if first < second else (second, first)


def validate_page(page: int) -> int:
    """Reject page numbers outside 1..MAX_PAGE."""
    if page < 1:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Page must be 1 or greater.")
    if page > MAX_PAGE:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, f"Page must be {MAX_PAGE} or less."
        )
    return page


def page_offset(page: int, per_page: int) -> int:
    return (page - 1) * per_page


def make_excerpt(content: str) -> str:
    """Collapse whitespace and cut to EXCERPT_LENGTH characters."""
    return " ".join(content.split())[:EXCERPT_LENGTH]


def validate_content(content: str) -> str:
    """Strip and length-check message content.

    Raises:
        InvalidRequestError: If content is empty or too long.
    """
    content = content.strip()
    if not content:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Message content is required.")
    if len(content) > MAX_MESSAGE_CONTENT_LENGTH:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"Message content exceeds {MAX_MESSAGE_CONTENT_LENGTH} characters.",
        )
    return content


def get_recipient_or_404(db: Session, user_id: UUID) -> User:
    """Load a recipient that may be messaged.

    Private (non-public) users are masked as not found.
    """
    user = db.get(User, user_id)
    if user is None or not user.public:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found.")
    return user


def find_thread(db: Session, first: UUID, second: UUID) -> Thread | None:
    """Find the thread for an (unordered) pair of users."""
    user_a_id, user_b_id = ordered_pair(first, second)
    return db.scalar(
        select(Thread).where(Thread.user_a_id == user_a_id, Thread.user_b_id == user_b_id)
    )


def get_or_create_thread(db: Session, first: UUID, second: UUID) -> Thread:
    """Find or create the thread for a pair of users.

    Must be called inside a transaction. A concurrent insert of the same
    pair trips the unique constraint; the savepoint is rolled back and the
    winner's row is returned.
    """
    thread = find_thread(db, first, second)
    if thread is not None:
        return thread

    user_a_id, user_b_id = ordered_pair(first, second)
    try:
        with db.begin_nested():
            thread = Thread(user_a_id=user_a_id, user_b_id=user_b_id, next_seq=1)
            db.add(thread)
    except IntegrityError:
        thread = find_thread(db, first, second)
        if thread is None:
            raise
        logger.info("thread_create_race_recovered", thread_id=str(thread.id))
    return thread


def message_to_out(message: Message) -> MessageOut:
    """Convert Message ORM model to MessageOut schema."""
    return MessageOut(
        id=message.id,
        content=message.content,
        user_from=UserRef.model_validate(message.user_from),
        user_to=UserRef.model_validate(message.user_to),
        notified=message.notified,
        read=message.read,
        created=message.created_at,
    )


def thread_to_out(thread: Thread) -> ThreadOut:
    """Convert Thread ORM model (with its latest message loaded) to ThreadOut."""
    message = thread.last_message
    return ThreadOut(
        id=thread.id,
        user_from=UserRef.model_validate(thread.user_from),
        user_to=UserRef.model_validate(thread.user_to),
        message=ThreadMessageOut(
            id=message.id,
            content=message.content,
            excerpt=make_excerpt(message.content),
        ),
        read=thread.read,
        updated=thread.updated_at,
    )


# =============================================================================
# Service Functions
# =============================================================================


def send_message(db: Session, viewer_id: UUID, user_to_id: UUID, content: str) -> MessageOut:
    """Send a message from the viewer to another user.

    Persists the message and, in the same transaction, creates or updates
    the pair's thread so it points at this message as the latest one.

    Args:
        db: Database session.
        viewer_id: The sender.
        user_to_id: The recipient.
        content: Message text.

    Returns:
        The created message.

    Raises:
        ForbiddenError(E_SELF_MESSAGE_FORBIDDEN): If the recipient is the viewer.
        InvalidRequestError(E_INVALID_REQUEST): If content is empty or too long.
        NotFoundError(E_USER_NOT_FOUND): If the recipient doesn't exist or is private.
    """
    if user_to_id == viewer_id:
        raise ForbiddenError(
            ApiErrorCode.E_SELF_MESSAGE_FORBIDDEN, SELF_MESSAGE_FORBIDDEN_MESSAGE
        )

    content = validate_content(content)
    get_recipient_or_404(db, user_to_id)

    with transaction(db):
        thread = get_or_create_thread(db, viewer_id, user_to_id)
        seq = assign_next_message_seq(db, thread.id)

        message = Message(
            thread_id=thread.id,
            user_from_id=viewer_id,
            user_to_id=user_to_id,
            seq=seq,
            content=content,
            notified=False,
            read=False,
            created_at=utc_now(),
        )
        db.add(message)
        db.flush()

        thread.last_message_id = message.id
        thread.user_from_id = viewer_id
        thread.user_to_id = user_to_id
        thread.read = False
        thread.updated_at = message.created_at

        result = message_to_out(message)

    logger.info(
        "message_sent",
        message_id=str(message.id),
        thread_id=str(thread.id),
        seq=seq,
    )

    return result


def list_thread(
    db: Session,
    viewer_id: UUID,
    user_id: UUID,
    page: int = 1,
    per_page: int = MESSAGES_PER_PAGE,
) -> tuple[list[MessageOut], PageInfo]:
    """List messages exchanged between the viewer and another user.

    Newest first. Page N (1-indexed) holds items [(N-1)*per_page, N*per_page);
    the last page may be short and pages past the end are empty.

    Args:
        db: Database session.
        viewer_id: The ID of the viewer.
        user_id: The correspondent.
        page: 1-indexed page number.
        per_page: Page size.

    Returns:
        Tuple of (messages, page_info).

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): If page < 1.
    """
    page = validate_page(page)

    thread = find_thread(db, viewer_id, user_id)
    if thread is None:
        return [], PageInfo(page=page, per_page=per_page, total=0)

    total = db.scalar(
        select(func.count()).select_from(Message).where(Message.thread_id == thread.id)
    )

    messages = db.scalars(
        select(Message)
        .where(Message.thread_id == thread.id)
        .options(joinedload(Message.user_from), joinedload(Message.user_to))
        .order_by(Message.seq.desc(), Message.id.desc())
        .offset(page_offset(page, per_page))
        .limit(per_page)
    ).all()

    return (
        [message_to_out(m) for m in messages],
        PageInfo(page=page, per_page=per_page, total=total or 0),
    )


def list_inbox(
    db: Session,
    viewer_id: UUID,
    page: int = 1,
    per_page: int = MESSAGES_PER_PAGE,
) -> tuple[list[ThreadOut], PageInfo]:
    """List the viewer's threads, most recently active first.

    Ordered by updated_at DESC, id DESC.

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): If page < 1.
    """
    page = validate_page(page)

    visible = and_(
        or_(Thread.user_a_id == viewer_id, Thread.user_b_id == viewer_id),
        Thread.last_message_id.is_not(None),
    )

    total = db.scalar(select(func.count()).select_from(Thread).where(visible))

    threads = db.scalars(
        select(Thread)
        .where(visible)
        .options(
            joinedload(Thread.user_from),
            joinedload(Thread.user_to),
            joinedload(Thread.last_message),
        )
        .order_by(Thread.updated_at.desc(), Thread.id.desc())
        .offset(page_offset(page, per_page))
        .limit(per_page)
    ).all()

    return (
        [thread_to_out(t) for t in threads],
        PageInfo(page=page, per_page=per_page, total=total or 0),
    )


def mark_read(db: Session, viewer_id: UUID, message_ids: list[UUID]) -> int:
    """Mark received messages as read.

    Ids that don't exist, were sent by the viewer, or are already read are
    ignored. A thread whose latest message becomes read is marked read too.

    Returns:
        Number of messages updated.
    """
    if not message_ids:
        return 0

    with transaction(db):
        messages = db.scalars(
            select(Message).where(
                Message.id.in_(message_ids),
                Message.user_to_id == viewer_id,
                Message.read.is_(False),
            )
        ).all()

        for message in messages:
            message.read = True

        updated_ids = {m.id for m in messages}
        thread_ids = {m.thread_id for m in messages}
        if thread_ids:
            threads = db.scalars(select(Thread).where(Thread.id.in_(thread_ids))).all()
            for thread in threads:
                if thread.last_message_id in updated_ids:
                    thread.read = True

    logger.info("messages_marked_read", count=len(updated_ids))
    return len(updated_ids)


def count_unread(db: Session, viewer_id: UUID) -> int:
    """Count messages received by the viewer that are still unread."""
    result = db.scalar(
        select(func.count())
        .select_from(Message)
        .where(Message.user_to_id == viewer_id, Message.read.is_(False))
    )
    return result or 0
