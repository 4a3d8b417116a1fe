"""
Discussion error taxonomy
Shared by the store (mapped to HTTP responses) and the client (mapped from them)
"""
from typing import Optional


class DiscussionError(Exception):
    """Base class, carries the HTTP status the API answers with"""
    status_code = 500
    code = "DISCUSSION_ERROR"

    def __init__(self, detail: str = "", status_code: Optional[int] = None):
        super().__init__(detail or self.__class__.__name__)
        self.detail = detail or self.__class__.__name__
        if status_code is not None:
            self.status_code = status_code


class ValidationError(DiscussionError):
    """Empty content, malformed ids, unknown item type"""
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidParent(ValidationError):
    """parentMessageId does not resolve inside the same discussion"""
    code = "INVALID_PARENT"


class AuthenticationError(DiscussionError):
    status_code = 401
    code = "AUTH_FAILED"


class Forbidden(DiscussionError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(DiscussionError):
    """Discussion or message missing (or tombstoned) at mutation time"""
    status_code = 404
    code = "NOT_FOUND"


class Conflict(DiscussionError):
    """Optimistic write lost too many races in a row"""
    status_code = 409
    code = "CONFLICT"


class NetworkError(DiscussionError):
    """Transport failure, timeout or 5xx seen by the client"""
    status_code = 503
    code = "NETWORK_ERROR"


STATUS_TO_ERROR = {
    400: ValidationError,
    401: AuthenticationError,
    403: Forbidden,
    404: NotFound,
    409: Conflict,
    422: ValidationError,
}


CODE_TO_ERROR = {
    cls.code: cls
    for cls in (ValidationError, InvalidParent, AuthenticationError, Forbidden, NotFound, Conflict)
}


def error_for_status(status_code: int, detail: str, code: Optional[str] = None) -> DiscussionError:
    """Map an HTTP error response back to the taxonomy (client side)"""
    cls = CODE_TO_ERROR.get(code) if code else None
    if cls is not None:
        return cls(detail)
    cls = STATUS_TO_ERROR.get(status_code)
    if cls is None:
        return NetworkError(detail or f"Server error ({status_code})", status_code=status_code)
    return cls(detail)
