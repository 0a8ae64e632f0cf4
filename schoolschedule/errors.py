"""
Error taxonomy shared by repositories, services and HTTP handlers.

Every APIError carries the HTTP status it maps to; the Flask app renders
them through one error handler (see main.create_app).
"""

from __future__ import annotations


class APIError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "code": self.code}


class ValidationError(APIError):
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class GradeSyntaxError(ValidationError):
    """Class name carries no digits to derive a grade from."""


class GradeRangeError(ValidationError):
    """Derived grade is outside 1..11."""


class AuthenticationError(APIError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class AuthorizationError(APIError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class NotFoundError(APIError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message)


class StorageError(APIError):
    status_code = 500
    code = "DB_ERROR"
