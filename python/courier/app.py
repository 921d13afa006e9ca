"""Application factory for the Courier API.

create_app() wires error handlers, routes and (outside tests) the auth gate.
The request-id middleware is attached separately with
add_request_id_middleware(), after everything else, because Starlette runs
middleware in reverse registration order and request IDs have to wrap the
auth gate. That way a 403 from auth still carries X-Request-ID and shows up
in the access log.

Per-request flow:
    RequestIDMiddleware -> AuthMiddleware -> route -> AuthMiddleware -> RequestIDMiddleware
"""

import json
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from courier.api.routes import create_api_router
from courier.auth.middleware import AuthMiddleware
from courier.auth.verifier import JwksVerifier, TokenVerifier
from courier.config import get_settings
from courier.db.engine import create_schema, get_engine
from courier.errors import ApiError, ApiErrorCode
from courier.logging import configure_logging, get_logger
from courier.middleware import RequestIDMiddleware
from courier.responses import (
    api_error_handler,
    error_json_response,
    http_exception_handler,
    unhandled_exception_handler,
)
from courier.services.bootstrap import create_bootstrap_callback

logger = get_logger(__name__)

JSON_BODY_METHODS = ("POST", "PUT", "PATCH")


def create_token_verifier() -> JwksVerifier:
    """JWKS verifier configured from the AUTH_* settings."""
    settings = get_settings()
    return JwksVerifier(
        jwks_url=settings.auth_jwks_url,  # type: ignore
        issuer=settings.normalized_issuer,  # type: ignore
        audiences=settings.audience_list,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if get_settings().auto_create_schema:
        create_schema(get_engine())
        logger.info("schema_ready")
    yield
    logger.info("app_shutdown")


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Body, path and query validation failures all become 400 E_INVALID_REQUEST."""
    logger.info("request_validation_failed", errors=len(exc.errors()))
    return error_json_response(ApiErrorCode.E_INVALID_REQUEST, "Invalid request.")


async def reject_malformed_json(request: Request, call_next):
    """Answer 400 for a JSON body that doesn't parse, before routing."""
    if request.method in JSON_BODY_METHODS and "application/json" in request.headers.get(
        "content-type", ""
    ):
        body = await request.body()
        if body:
            try:
                json.loads(body)
            except ValueError:
                return error_json_response(ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body")
    return await call_next(request)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        skip_auth_middleware: Leave the auth gate off; tests add their own.
        token_verifier: Verifier to use instead of the JWKS one.
    """
    settings = get_settings()
    configure_logging(json_format=settings.log_json)

    app = FastAPI(
        title="Courier API",
        description="User-to-user messaging API",
        version="0.1.0",
        lifespan=lifespan,
    )
    register_error_handlers(app)
    app.middleware("http")(reject_malformed_json)
    app.include_router(create_api_router())

    if not skip_auth_middleware:
        app.add_middleware(
            AuthMiddleware,
            verifier=token_verifier or create_token_verifier(),
            bootstrap_callback=create_bootstrap_callback(),
        )
        logger.info("auth_middleware_enabled", env=settings.courier_env.value)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Attach RequestIDMiddleware; call last so it wraps everything else."""
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
