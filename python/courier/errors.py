"""Error codes and the exceptions that carry them.

Services raise ApiError subclasses; the handlers in courier.responses turn
them into {"message", "code", "request_id"} bodies with the status below.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    E_FORBIDDEN = "E_FORBIDDEN"
    E_SELF_MESSAGE_FORBIDDEN = "E_SELF_MESSAGE_FORBIDDEN"
    E_NOT_FOUND = "E_NOT_FOUND"
    E_USER_NOT_FOUND = "E_USER_NOT_FOUND"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"
    E_DB_UNAVAILABLE = "E_DB_UNAVAILABLE"
    E_INTERNAL = "E_INTERNAL"


_CODES_BY_STATUS: dict[int, tuple[ApiErrorCode, ...]] = {
    400: (ApiErrorCode.E_INVALID_REQUEST,),
    403: (ApiErrorCode.E_FORBIDDEN, ApiErrorCode.E_SELF_MESSAGE_FORBIDDEN),
    404: (ApiErrorCode.E_NOT_FOUND, ApiErrorCode.E_USER_NOT_FOUND),
    500: (ApiErrorCode.E_INTERNAL,),
    503: (ApiErrorCode.E_AUTH_UNAVAILABLE, ApiErrorCode.E_DB_UNAVAILABLE),
}

ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    code: status for status, codes in _CODES_BY_STATUS.items() for code in codes
}

# Client-facing wording; existing clients match on these strings verbatim
FORBIDDEN_MESSAGE = "Forbidden."
SELF_MESSAGE_FORBIDDEN_MESSAGE = "Recepient cannot be currently authenticated user."


class ApiError(Exception):
    """An error with a stable code and a message safe to show the client."""

    default_code = ApiErrorCode.E_INTERNAL
    default_message = "Internal server error"

    def __init__(self, code: ApiErrorCode | None = None, message: str | None = None):
        self.code = code or self.default_code
        self.message = message or self.default_message
        self.status_code = ERROR_CODE_TO_STATUS.get(self.code, 500)
        super().__init__(self.message)


class NotFoundError(ApiError):
    default_code = ApiErrorCode.E_NOT_FOUND
    default_message = "Not found."


class ForbiddenError(ApiError):
    default_code = ApiErrorCode.E_FORBIDDEN
    default_message = FORBIDDEN_MESSAGE


class InvalidRequestError(ApiError):
    default_code = ApiErrorCode.E_INVALID_REQUEST
    default_message = "Invalid request."
