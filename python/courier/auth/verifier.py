"""Bearer token verification.

JwksVerifier checks tokens against the identity provider's published key
set. Tests swap in tests/support/token_verifier.py, which signs with a
local keypair but shares decode_claims() so both apply the same checks.

A rejected token always reaches the client as 403 "Forbidden."; which
check failed goes to the log only.
"""

import logging
import threading
from typing import Any, Protocol
from uuid import UUID

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)

from courier.errors import ApiError, ApiErrorCode, ForbiddenError

logger = logging.getLogger(__name__)

CLOCK_SKEW_SECONDS = 60
REQUIRED_CLAIMS = ["exp", "iss", "sub"]

# Most specific first; InvalidTokenError is the PyJWT base class
_FAILURE_REASONS: tuple[tuple[type[InvalidTokenError], str], ...] = (
    (ExpiredSignatureError, "expired_token"),
    (InvalidSignatureError, "invalid_signature"),
    (InvalidIssuerError, "invalid_issuer"),
    (InvalidAudienceError, "invalid_audience"),
    (DecodeError, "decode_error"),
)


class TokenVerifier(Protocol):
    def verify(self, token: str) -> dict[str, Any]:
        """Return the token's claims.

        Raises:
            ForbiddenError: The token is unusable for any reason.
            ApiError(E_AUTH_UNAVAILABLE): Keys couldn't be fetched.
        """
        ...


def _reject(reason: str, error: Exception | None = None) -> ForbiddenError:
    extra = {"reason": reason}
    if error is not None:
        extra["error"] = str(error)
    logger.warning("auth_failure", extra=extra)
    return ForbiddenError()


def _failure_reason(error: InvalidTokenError) -> str:
    for error_type, reason in _FAILURE_REASONS:
        if isinstance(error, error_type):
            return reason
    return "invalid_token"


def decode_claims(
    token: str,
    key: Any,
    algorithms: list[str],
    issuer: str,
    audiences: list[str],
) -> dict[str, Any]:
    """Check signature, exp (60s leeway), iss and aud, and that sub is a UUID.

    Raises:
        ForbiddenError: On any failed check.
    """
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=audiences,
            issuer=issuer,
            leeway=CLOCK_SKEW_SECONDS,
            options={"require": REQUIRED_CLAIMS, "verify_aud": True},
        )
    except InvalidTokenError as e:
        raise _reject(_failure_reason(e), e) from e

    sub = payload.get("sub")
    if not sub:
        raise _reject("missing_sub")
    try:
        UUID(sub)
    except (ValueError, TypeError) as e:
        raise _reject("invalid_sub") from e

    return payload


class JwksVerifier:
    """Verifies tokens against the identity provider's published keys.

    Accepts RS256 and ES256; the key is chosen by the token's kid. A kid
    that isn't in the cached key set triggers one refetch, so key rotation
    on the provider side doesn't need a restart here.

    Args:
        jwks_url: Full URL to the JWKS endpoint.
        issuer: Expected issuer (trailing slash is stripped).
        audiences: Allowed audience values.
        cache_ttl: Seconds to keep fetched keys.
    """

    ALGORITHMS = ["RS256", "ES256"]

    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        audiences: list[str],
        cache_ttl: int = 3600,
    ):
        self.jwks_url = jwks_url
        self.issuer = issuer.rstrip("/")
        self.audiences = audiences
        self.cache_ttl = cache_ttl

        self._jwks_client: PyJWKClient | None = None
        self._jwks_lock = threading.Lock()

    def _build_client(self) -> PyJWKClient:
        return PyJWKClient(self.jwks_url, cache_keys=True, lifespan=self.cache_ttl)

    def _get_jwks_client(self) -> PyJWKClient:
        with self._jwks_lock:
            if self._jwks_client is None:
                self._jwks_client = self._build_client()
            return self._jwks_client

    def _refresh_jwks(self) -> None:
        """Drop cached keys so the next lookup refetches the key set."""
        with self._jwks_lock:
            self._jwks_client = self._build_client()

    def verify(self, token: str) -> dict[str, Any]:
        """Verify a bearer token and return its claims.

        Raises:
            ForbiddenError(E_FORBIDDEN): Token is invalid.
            ApiError(E_AUTH_UNAVAILABLE): JWKS fetch failed.
        """
        try:
            signing_key = self._get_signing_key(token)
        except PyJWKClientError as e:
            logger.warning("auth_failure", extra={"reason": "jwks_unavailable", "error": str(e)})
            raise ApiError(
                ApiErrorCode.E_AUTH_UNAVAILABLE, "Authentication service unavailable"
            ) from e
        except DecodeError as e:
            # Header not parseable, so there is no kid to look up
            raise _reject("decode_error", e) from e

        return decode_claims(
            token,
            signing_key.key,
            algorithms=self.ALGORITHMS,
            issuer=self.issuer,
            audiences=self.audiences,
        )

    def _get_signing_key(self, token: str) -> Any:
        """Look up the token's signing key, refetching the key set once on a kid miss.

        Raises:
            PyJWKClientError: The key set couldn't be fetched.
            ForbiddenError: The kid is unknown even after a refetch.
        """
        try:
            return self._get_jwks_client().get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            if not _is_kid_miss(e):
                raise

        logger.info("Refreshing JWKS due to kid miss")
        self._refresh_jwks()

        try:
            return self._get_jwks_client().get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            if not _is_kid_miss(e):
                raise
            raise _reject("kid_not_found") from e


def _is_kid_miss(error: PyJWKClientError) -> bool:
    message = str(error)
    return "Unable to find" in message or "kid" in message.lower()
