from typing import Optional


class FinanceError(ValueError):
    status_code = 500

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class InvalidInput(FinanceError):
    status_code = 400


class AuthenticationFailed(FinanceError):
    status_code = 401


class NotFound(FinanceError):
    """Missing record, or one that belongs to another user."""

    status_code = 404


class Conflict(FinanceError):
    status_code = 409
