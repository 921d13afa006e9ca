"""Token minting and header helpers for API tests.

Tokens are signed with MockJwtVerifier's keypair, so an auth_client built
on that verifier accepts them.
"""

import time
from uuid import UUID, uuid4

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from tests.support.token_verifier import MockJwtVerifier

DEFAULT_ISSUER = "test-issuer"
DEFAULT_AUDIENCE = "test-audience"
DEFAULT_EXPIRES_IN = 3600


def _claims(user_id: UUID | str, issuer: str, audience: str, expires_in: int) -> dict:
    issued_at = int(time.time())
    return {
        "sub": str(user_id),
        "iss": issuer,
        "aud": audience,
        "iat": issued_at,
        "exp": issued_at + expires_in,
    }


def mint_test_token(
    user_id: UUID | str,
    expires_in: int = DEFAULT_EXPIRES_IN,
    issuer: str = DEFAULT_ISSUER,
    audience: str = DEFAULT_AUDIENCE,
    **extra_claims,
) -> str:
    """RS256 token for `user_id`; extra_claims are merged over the defaults."""
    claims = {**_claims(user_id, issuer, audience, expires_in), **extra_claims}
    return jwt.encode(claims, MockJwtVerifier.get_private_key(), algorithm="RS256")


def mint_expired_token(user_id: UUID | str) -> str:
    # Well past the verifier's clock skew allowance
    return mint_test_token(user_id, expires_in=-3600)


def mint_token_with_bad_signature(user_id: UUID | str) -> str:
    """Otherwise valid token signed by a key the verifier doesn't know."""
    stranger_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    claims = _claims(user_id, DEFAULT_ISSUER, DEFAULT_AUDIENCE, DEFAULT_EXPIRES_IN)
    return jwt.encode(claims, stranger_key, algorithm="RS256")


def auth_headers(user_id: UUID | str, **token_kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_test_token(user_id, **token_kwargs)}"}


def create_test_user_id() -> UUID:
    return uuid4()
