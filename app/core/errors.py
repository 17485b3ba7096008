# app/core/errors.py
from __future__ import annotations

from typing import Dict, Optional


class TradeError(Exception):
    """
    Base for deterministic trade failures.
    Carries the HTTP status the API layer renders it with.
    """
    status_code: int = 500
    default_message: str = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationError(TradeError):
    status_code = 400
    default_message = "Bad request"


class AuthorizationError(TradeError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(TradeError):
    status_code = 404
    default_message = "Not found"


class ConflictError(TradeError):
    # surfaced as a plain bad request
    status_code = 400
    default_message = "Conflict"


class RateLimitError(TradeError):
    status_code = 429
    default_message = "Too Many Requests"

    def __init__(self, message: Optional[str] = None, retry_after_seconds: int = 60):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after_seconds)}


class DependencyError(TradeError):
    """Missing configuration/table in the critical path."""
    status_code = 500
    default_message = "Internal Server Error"
