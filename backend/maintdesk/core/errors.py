"""
Domain error taxonomy.

Services raise these; the API layer renders them as
``{"detail": {"error": CODE, "message": ..., **extra}}`` with the mapped
HTTP status (see ``maintdesk.main``).
"""
from __future__ import annotations

from typing import Any

from fastapi import status


class DomainError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL"
    message: str = "Something went wrong"

    def __init__(self, message: str | None = None, *, code: str | None = None, **extra: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.extra = extra
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.extra}


class UnauthorizedError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    message = "Authentication required. Please sign in again."


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    message = "You do not have permission to perform this action"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    message = "Not found"


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    message = "Invalid input"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    message = "The request conflicts with the current state"


class InternalError(DomainError):
    pass


# ---------------------------------------------------------
# Request lifecycle
# ---------------------------------------------------------
class InvalidTransition(ValidationError):
    code = "INVALID_TRANSITION"
    message = "This status change is not allowed"


class NotAssignee(ForbiddenError):
    code = "NOT_ASSIGNEE"
    message = "Only the assigned worker can act on this request"


class RequestChanged(ConflictError):
    code = "REQUEST_CHANGED"
    message = "The request was changed by someone else. Reload and try again."


# ---------------------------------------------------------
# Invitations
# ---------------------------------------------------------
class TokenNotFound(ValidationError):
    code = "TOKEN_NOT_FOUND"
    message = "Invalid invitation token"


class TokenExpired(ValidationError):
    code = "TOKEN_EXPIRED"
    message = "This invitation has expired. Ask for a new one."


class EmailMismatch(ValidationError):
    code = "EMAIL_MISMATCH"
    message = "Email does not match the invitation"


class AlreadyRedeemed(ConflictError):
    code = "ALREADY_REDEEMED"
    message = "This invitation has already been accepted"


class DuplicateInvitation(ConflictError):
    code = "DUPLICATE_INVITATION"
    message = "A pending invitation already exists for this email"


# ---------------------------------------------------------
# Usage limits
# ---------------------------------------------------------
class LimitExceeded(ConflictError):
    code = "LIMIT_EXCEEDED"
    message = "Plan limit reached. Upgrade your plan to add more."
