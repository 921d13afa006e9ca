"""Pytest configuration and fixtures for Courier tests.

Test isolation strategy:
- Tests run against a throwaway SQLite file unless DATABASE_URL is set
- Every table is emptied after each test (see tests/utils/db.py)
- Auth tests use auth_client with test JWT tokens signed by MockJwtVerifier
"""

import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from uuid import UUID, uuid4

# Settings are read on first use, so the environment must be ready before
# any courier module is imported.
_test_db_dir = Path(tempfile.mkdtemp(prefix="courier-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_db_dir / 'courier_test.db'}")
os.environ.setdefault("COURIER_ENV", "test")
os.environ.setdefault("AUTH_JWKS_URL", "http://localhost:9999/.well-known/jwks.json")
os.environ.setdefault("AUTH_ISSUER", "test-issuer")
os.environ.setdefault("AUTH_AUDIENCES", "test-audience")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from courier.api.deps import get_db
from courier.app import add_request_id_middleware, create_app
from courier.auth.middleware import AuthMiddleware
from courier.config import clear_settings_cache
from courier.db.engine import create_db_engine, create_schema
from courier.db.session import create_session_factory, session_scope
from courier.services.bootstrap import create_bootstrap_callback
from tests.helpers import create_test_user_id
from tests.support.token_verifier import MockJwtVerifier
from tests.utils.db import clear_tables


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    """Create a database engine for the test session and its schema.

    This engine is shared across all tests in the session.
    """
    engine = create_db_engine(os.environ["DATABASE_URL"])
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def clean_tables(engine: Engine) -> Generator[None, None, None]:
    """Empty every table after each test."""
    yield
    clear_tables(engine)


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to the test engine."""
    return create_session_factory(engine)


@pytest.fixture
def db_session(
    session_factory: sessionmaker[Session], clean_tables
) -> Generator[Session, None, None]:
    """Provide a database session for the test.

    Rows created through it must be committed (the factories do) before
    they are visible to requests made with auth_client.
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def _use_test_database(app: FastAPI, session_factory: sessionmaker[Session]) -> None:
    def override_get_db() -> Generator[Session, None, None]:
        with session_scope(session_factory) as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client(session_factory: sessionmaker[Session]) -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client without authentication.

    Suitable for public endpoints and for checking handlers in isolation.
    """
    app = create_app(skip_auth_middleware=True)
    _use_test_database(app, session_factory)
    add_request_id_middleware(app, log_requests=False)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def test_verifier() -> MockJwtVerifier:
    """Provide a test token verifier."""
    return MockJwtVerifier()


@pytest.fixture
def auth_app(session_factory: sessionmaker[Session], test_verifier: MockJwtVerifier) -> FastAPI:
    """Provide a FastAPI app with auth middleware using the test verifier.

    Bootstrap and route handlers both use the test database engine.
    """

    app = create_app(skip_auth_middleware=True)
    _use_test_database(app, session_factory)

    app.add_middleware(
        AuthMiddleware,
        verifier=test_verifier,
        bootstrap_callback=create_bootstrap_callback(session_factory),
    )
    add_request_id_middleware(app, log_requests=False)

    return app


@pytest.fixture
def auth_client(auth_app: FastAPI) -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client with auth middleware.

    Use auth_headers() to generate valid tokens for requests.
    """
    with TestClient(auth_app) as client:
        yield client


@pytest.fixture
def test_user_id() -> UUID:
    """Generate a random UUID for a test user."""
    return create_test_user_id()


@pytest.fixture
def random_uuid() -> str:
    """Generate a random UUID string for test data."""
    return str(uuid4())


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
