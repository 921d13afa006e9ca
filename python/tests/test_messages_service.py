"""Service-level tests for messages.

Covers behavior that is awkward to reach through HTTP: ordering when
timestamps collide, thread bookkeeping, and the small helpers.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from courier.db.models import Message, Thread
from courier.errors import ApiErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from courier.services import messages as messages_service
from courier.services.messages import (
    get_or_create_thread,
    make_excerpt,
    ordered_pair,
    validate_content,
    validate_page,
)
from tests.factories import create_test_conversation, create_test_message, create_test_user


class TestHelpers:
    def test_ordered_pair_is_symmetric(self):
        a, b = uuid4(), uuid4()

        assert ordered_pair(a, b) == ordered_pair(b, a)
        assert ordered_pair(a, b)[0] < ordered_pair(a, b)[1]

    def test_make_excerpt(self):
        assert make_excerpt("  hello \n\n world  ") == "hello world"
        assert len(make_excerpt("x" * 500)) == 100

    def test_validate_content_strips(self):
        assert validate_content("  hi  ") == "hi"

    @pytest.mark.parametrize("content", ["", " \n\t ", "x" * 20001])
    def test_validate_content_rejects(self, content):
        with pytest.raises(InvalidRequestError):
            validate_content(content)

    def test_validate_content_max_length_ok(self):
        assert len(validate_content("x" * 20000)) == 20000

    @pytest.mark.parametrize("page", [0, -3, 1_000_001, 10**19])
    def test_validate_page_rejects(self, page):
        with pytest.raises(InvalidRequestError):
            validate_page(page)

    def test_validate_page_upper_bound_ok(self):
        assert validate_page(1_000_000) == 1_000_000


class TestSendMessageService:
    def test_self_send_raises_forbidden(self, db_session: Session):
        user_id = create_test_user(db_session)

        with pytest.raises(ForbiddenError) as exc_info:
            messages_service.send_message(db_session, user_id, user_id, "hello")

        assert exc_info.value.code == ApiErrorCode.E_SELF_MESSAGE_FORBIDDEN
        assert exc_info.value.message == "Recepient cannot be currently authenticated user."
        assert db_session.scalars(select(Message)).all() == []

    def test_unknown_recipient_raises_not_found(self, db_session: Session):
        sender = create_test_user(db_session)

        with pytest.raises(NotFoundError) as exc_info:
            messages_service.send_message(db_session, sender, uuid4(), "hello")

        assert exc_info.value.code == ApiErrorCode.E_USER_NOT_FOUND

    def test_one_thread_per_pair(self, db_session: Session):
        """Both directions share a thread keyed by the ordered pair."""
        alice = create_test_user(db_session)
        bob = create_test_user(db_session)

        create_test_message(db_session, alice, bob, "one")
        create_test_message(db_session, bob, alice, "two")

        threads = db_session.scalars(select(Thread)).all()
        assert len(threads) == 1
        assert (threads[0].user_a_id, threads[0].user_b_id) == ordered_pair(alice, bob)

    def test_seq_increases_per_message(self, db_session: Session):
        alice = create_test_user(db_session)
        bob = create_test_user(db_session)
        create_test_conversation(db_session, alice, bob, count=4)

        seqs = db_session.scalars(select(Message.seq).order_by(Message.seq)).all()
        assert seqs == [1, 2, 3, 4]

    def test_thread_tracks_latest_message(self, db_session: Session):
        alice = create_test_user(db_session)
        bob = create_test_user(db_session)
        create_test_message(db_session, alice, bob, "first")
        last_id = create_test_message(db_session, bob, alice, "second")

        thread = db_session.scalars(select(Thread)).one()
        assert thread.last_message_id == last_id
        assert thread.user_from_id == bob
        assert thread.user_to_id == alice
        assert thread.read is False

    def test_get_or_create_thread_reuses_existing(self, db_session: Session):
        alice = create_test_user(db_session)
        bob = create_test_user(db_session)

        first = get_or_create_thread(db_session, alice, bob)
        db_session.commit()
        second = get_or_create_thread(db_session, bob, alice)

        assert first.id == second.id


class TestListThreadService:
    def test_order_uses_seq_when_timestamps_collide(self, db_session: Session):
        """Messages created in the same instant still list newest first."""
        alice = create_test_user(db_session)
        bob = create_test_user(db_session)
        create_test_conversation(db_session, alice, bob, count=5)

        same_instant = datetime(2024, 1, 1, tzinfo=UTC)
        db_session.execute(update(Message).values(created_at=same_instant))
        db_session.commit()

        messages, _ = messages_service.list_thread(db_session, alice, bob)

        assert [m.content for m in messages] == [f"Message content {i}" for i in range(5, 0, -1)]

    def test_page_info(self, db_session: Session):
        alice = create_test_user(db_session)
        bob = create_test_user(db_session)
        create_test_conversation(db_session, alice, bob, count=25)

        messages, page_info = messages_service.list_thread(db_session, alice, bob, page=2)

        assert len(messages) == 5
        assert page_info.total == 25
        assert page_info.has_prev is True
        assert page_info.has_next is False

    def test_no_thread_is_empty(self, db_session: Session):
        alice = create_test_user(db_session)

        messages, page_info = messages_service.list_thread(db_session, alice, uuid4())

        assert messages == []
        assert page_info.total == 0

    def test_listing_does_not_mark_read(self, db_session: Session):
        alice = create_test_user(db_session)
        bob = create_test_user(db_session)
        create_test_message(db_session, alice, bob, "hello")

        messages_service.list_thread(db_session, bob, alice)

        assert messages_service.count_unread(db_session, bob) == 1


class TestReadTrackingService:
    def test_mark_read_and_count(self, db_session: Session):
        alice = create_test_user(db_session)
        bob = create_test_user(db_session)
        ids = create_test_conversation(db_session, alice, bob, count=3)

        assert messages_service.count_unread(db_session, bob) == 3
        assert messages_service.mark_read(db_session, bob, ids[:2]) == 2
        assert messages_service.count_unread(db_session, bob) == 1

        # Latest message still unread, so the thread is too
        assert db_session.scalars(select(Thread)).one().read is False

    def test_mark_read_latest_marks_thread(self, db_session: Session):
        alice = create_test_user(db_session)
        bob = create_test_user(db_session)
        ids = create_test_conversation(db_session, alice, bob, count=2)

        messages_service.mark_read(db_session, bob, [ids[-1]])

        assert db_session.scalars(select(Thread)).one().read is True

    def test_mark_read_empty(self, db_session: Session):
        assert messages_service.mark_read(db_session, uuid4(), []) == 0

    def test_sender_cannot_mark_read(self, db_session: Session):
        alice = create_test_user(db_session)
        bob = create_test_user(db_session)
        message_id: UUID = create_test_message(db_session, alice, bob, "hello")

        assert messages_service.mark_read(db_session, alice, [message_id]) == 0
        assert messages_service.count_unread(db_session, bob) == 1
