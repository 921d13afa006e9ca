"""X-Request-ID middleware for request correlation and access logging.

Every response, auth failures included, carries X-Request-ID. A caller
supplied ID is kept when it is a UUID (lowercased) or a short token of
[A-Za-z0-9._-]; anything else is replaced with a fresh UUID4.

Must be added LAST so it runs FIRST (Starlette runs middleware in reverse
order of registration).
"""

import re
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from courier.errors import ApiErrorCode
from courier.logging import clear_request_context, get_logger, set_request_context
from courier.responses import error_json_response

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128

TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

logger = get_logger(__name__)


def resolve_request_id(incoming: str | None) -> str:
    """Return the request ID to use for a request.

    Args:
        incoming: Raw X-Request-ID header value, if any.

    Returns:
        The normalized incoming ID, or a new UUID4 string.
    """
    if incoming and len(incoming.encode("utf-8")) <= MAX_REQUEST_ID_LENGTH:
        if UUID_PATTERN.match(incoming):
            return incoming.lower()
        if TOKEN_PATTERN.match(incoming):
            return incoming
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID, binds logging context, emits one access log line.

    Args:
        app: The ASGI application.
        log_requests: If True, log access entries for each request.
    """

    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.monotonic()

        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_request_context(request_id, path=request.url.path, method=request.method)

        try:
            response = await call_next(request)

            viewer = getattr(request.state, "viewer", None)
            if viewer is not None:
                set_request_context(request_id, user_id=str(viewer.user_id))

            response.headers[REQUEST_ID_HEADER] = request_id

            if self.log_requests:
                logger.info(
                    "request_completed",
                    status_code=response.status_code,
                    duration_ms=round((time.monotonic() - start_time) * 1000, 2),
                )

            return response

        except Exception:
            # Answered here so the body and header still carry the request ID
            logger.exception("request_failed")
            response = error_json_response(ApiErrorCode.E_INTERNAL, "Internal server error")
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        finally:
            clear_request_context()
