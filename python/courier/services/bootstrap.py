"""User bootstrap service.

Provides race-safe user creation on first authenticated request.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from courier.auth.middleware import BootstrapCallback
from courier.db.models import User
from courier.db.session import session_scope, transaction

logger = logging.getLogger(__name__)


def _profile_from_claims(claims: dict[str, Any] | None) -> tuple[str | None, str | None]:
    """Pick username and display name out of identity provider claims."""
    if not claims:
        return None, None
    username = claims.get("preferred_username") or claims.get("username")
    display_name = claims.get("name")
    return username or None, display_name or None


def ensure_user(db: Session, user_id: UUID, claims: dict[str, Any] | None = None) -> UUID:
    """Ensure a users row exists for the authenticated subject.

    Idempotent and race-safe: a concurrent request that creates the same
    row first wins, and this call re-reads it. A username claim that
    collides with another account is dropped rather than failing the
    request.

    Args:
        db: Database session.
        user_id: The user's ID (from JWT sub claim).
        claims: Optional decoded token claims used to seed the profile.

    Returns:
        The user ID.
    """
    if db.get(User, user_id) is not None:
        return user_id

    username, display_name = _profile_from_claims(claims)

    try:
        with transaction(db):
            db.add(User(id=user_id, username=username, display_name=display_name))
        logger.info("Created user %s", user_id)
        return user_id
    except IntegrityError:
        pass

    # Lost a race, or the username is taken by someone else
    if db.get(User, user_id) is not None:
        logger.info("Found existing user %s after race", user_id)
        return user_id

    with transaction(db):
        db.add(User(id=user_id, username=None, display_name=display_name))
    logger.warning("Created user %s without conflicting username %r", user_id, username)
    return user_id


def create_bootstrap_callback(
    factory: sessionmaker[Session] | None = None,
) -> BootstrapCallback:
    """Build the auth middleware's bootstrap hook.

    Each call runs in its own short-lived session so the users row is
    committed before the route handler opens its session.
    """

    def bootstrap(user_id: UUID, claims: dict[str, Any]) -> UUID:
        with session_scope(factory) as db:
            return ensure_user(db, user_id, claims)

    return bootstrap
