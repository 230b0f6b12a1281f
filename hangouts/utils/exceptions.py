class HangoutsException(Exception):
    """Base exception for the application"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail)
        self.detail = detail


class AuthenticationError(HangoutsException):
    """Authentication related errors"""
    status_code = 401
    code = "UNAUTHENTICATED"


class AuthorizationError(HangoutsException):
    """Authorization related errors"""
    status_code = 403
    code = "FORBIDDEN"


class ValidationError(HangoutsException):
    """Validation related errors"""
    status_code = 422
    code = "VALIDATION_ERROR"


class InvalidArgumentError(HangoutsException):
    """Self-referential edges and other malformed arguments"""
    status_code = 400
    code = "INVALID_ARGUMENT"


class NotFoundError(HangoutsException):
    """Resource not found errors"""
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(HangoutsException):
    """Resource conflict errors"""
    status_code = 409
    code = "CONFLICT"


class DuplicateEdgeError(ConflictError):
    """Follow, request or friendship edge already exists"""
    code = "DUPLICATE_EDGE"
