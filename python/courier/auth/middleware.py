"""The auth gate in front of every non-public route.

Unauthenticated requests to any non-public path are answered with
403 {"message": "Forbidden."} before routing, so a rejected request never
touches the message store.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from courier.auth.verifier import TokenVerifier
from courier.errors import FORBIDDEN_MESSAGE, ApiError, ApiErrorCode, ForbiddenError
from courier.responses import error_json_response

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "authorization"
BEARER_PREFIX = "bearer "

# Reachable without a token
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

BootstrapCallback = Callable[[UUID, dict[str, Any]], UUID]


@dataclass
class Viewer:
    """Who is making the request; user_id is the token's sub claim."""

    user_id: UUID


def extract_bearer_token(auth_header: str | None) -> tuple[str | None, str | None]:
    """Pull the token out of an Authorization header value.

    Returns:
        (token, None) on success, (None, failure_reason) otherwise.
    """
    if not auth_header:
        return None, "missing_header"

    # Bearer prefix is case-insensitive
    if not auth_header.lower().startswith(BEARER_PREFIX):
        return None, "invalid_header_format"

    token = auth_header[len(BEARER_PREFIX) :].strip()
    if not token:
        return None, "empty_token"

    return token, None


class AuthMiddleware(BaseHTTPMiddleware):
    """Verifies the bearer token on every non-public request.

    Public paths pass straight through. Otherwise the token is verified,
    the bootstrap callback (if any) makes sure the viewer has a users row,
    and the Viewer is stored on request.state for get_viewer().
    """

    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier,
        bootstrap_callback: BootstrapCallback | None = None,
    ):
        super().__init__(app)
        self.verifier = verifier
        self.bootstrap_callback = bootstrap_callback

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        token, reason = extract_bearer_token(request.headers.get(AUTHORIZATION_HEADER))
        if token is None:
            logger.warning(
                "auth_failure",
                extra={"reason": reason, "request_path": request.url.path},
            )
            return error_json_response(ApiErrorCode.E_FORBIDDEN, FORBIDDEN_MESSAGE)

        try:
            payload = self.verifier.verify(token)
        except ApiError as e:
            return error_json_response(e.code, e.message, e.status_code)

        user_id = UUID(payload["sub"])

        if self.bootstrap_callback:
            try:
                self.bootstrap_callback(user_id, payload)
            except Exception:
                logger.exception("Bootstrap failed for user %s", user_id)
                return error_json_response(ApiErrorCode.E_INTERNAL, "Internal server error")

        request.state.viewer = Viewer(user_id=user_id)

        return await call_next(request)


def get_viewer(request: Request) -> Viewer:
    """Dependency returning the request's Viewer; 403 when auth didn't run."""
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ForbiddenError()
    return viewer
