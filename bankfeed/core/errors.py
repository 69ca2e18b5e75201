"""Domain error taxonomy shared by services and routers.

Services raise these instead of ``HTTPException`` so they stay usable outside a
request (bulk loops, webhook processors). ``bankfeed.main`` renders them as
``{"detail": message}`` with the matching status code.
"""

from __future__ import annotations


class BankfeedError(Exception):
    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(BankfeedError):
    """Malformed or missing input. Never retried."""

    status_code = 400


class NotFoundError(BankfeedError):
    """Unknown id, or an id the caller does not own."""

    status_code = 404


class ForbiddenError(NotFoundError):
    """The resource exists but belongs to another user."""

    status_code = 403


class ConflictError(BankfeedError):
    """Duplicate external id or a lost status-transition race."""

    status_code = 409

