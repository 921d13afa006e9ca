"""Response bodies, pagination headers and exception handlers.

Response shapes:
- Health: { "data": ... }
- Message and inbox listings: a bare JSON array, which is what existing
  inbox clients consume. Paging is carried in headers:
  Link (rel="next" / rel="prev") and X-Total-Count.
- Error: { "message": "...", "code": "E_...", "request_id": "..." }

The top-level "message" key is what clients display; "code" lets them tell
apart failures that share a status (e.g. the two 403s on POST /api/messages).
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from courier.errors import ERROR_CODE_TO_STATUS, ApiError, ApiErrorCode
from courier.logging import get_logger, get_request_id
from courier.schemas.messages import PageInfo

logger = get_logger(__name__)

TOTAL_COUNT_HEADER = "X-Total-Count"

# Framework HTTP errors (unknown route, wrong method) mapped onto our codes
HTTP_STATUS_TO_CODE = {
    400: ApiErrorCode.E_INVALID_REQUEST,
    403: ApiErrorCode.E_FORBIDDEN,
    404: ApiErrorCode.E_NOT_FOUND,
    405: ApiErrorCode.E_INVALID_REQUEST,
    422: ApiErrorCode.E_INVALID_REQUEST,
}


def success_response(data: Any) -> dict[str, Any]:
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Build an error body.

    request_id defaults to the one bound for the current request and is
    left out when there is none (e.g. outside a request).
    """
    body = {"message": message, "code": code.value}
    request_id = request_id or get_request_id()
    if request_id:
        body["request_id"] = request_id
    return body


def error_json_response(
    code: ApiErrorCode, message: str, status_code: int | None = None
) -> JSONResponse:
    """Error body as a JSONResponse; status follows the code unless given."""
    return JSONResponse(
        status_code=status_code or ERROR_CODE_TO_STATUS.get(code, 500),
        content=error_response(code, message),
    )


def paginated_response(request: Request, items: list[Any], page: PageInfo) -> JSONResponse:
    """Bare JSON array plus Link and X-Total-Count headers for the page."""
    links = []
    if page.has_next:
        links.append(f'<{request.url.include_query_params(page=page.page + 1)}>; rel="next"')
    if page.has_prev:
        links.append(f'<{request.url.include_query_params(page=page.page - 1)}>; rel="prev"')

    headers = {TOTAL_COUNT_HEADER: str(page.total)}
    if links:
        headers["Link"] = ", ".join(links)

    return JSONResponse(content=items, headers=headers)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_json_response(exc.code, exc.message, exc.status_code)


async def http_exception_handler(request: Request, exc: Any) -> JSONResponse:
    """Handle Starlette HTTPException (404 on unknown routes, 405, ...)."""
    code = HTTP_STATUS_TO_CODE.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    message = str(exc.detail) if exc.detail else "An error occurred"
    return error_json_response(code, message, exc.status_code)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500 E_INTERNAL; the exception is logged, never sent to the client."""
    logger.exception("unhandled_exception", error_type=type(exc).__name__)
    return error_json_response(ApiErrorCode.E_INTERNAL, "Internal server error")
