from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BaseAPIException(HTTPException):
    """Base exception for API errors.
    Ensures clarity and actionable next steps."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred. Please try again.",
        error: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.error = error or {}


# ============== Authentication & Account State ==============


class InvalidCredentialsException(BaseAPIException):
    """Triggered when login fails. Never says which half was wrong."""

    def __init__(self, detail: str = "Invalid email or password."):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
        )


class NotAuthenticatedException(BaseAPIException):
    """Missing, expired or malformed session token."""

    def __init__(self, detail: str = "Could not validate credentials."):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
        )


class AccountNotApprovedException(BaseAPIException):
    """Valid credentials, but the account is pending approval or suspended."""

    def __init__(self, detail: str = "Your account is awaiting administrator approval."):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class UserAlreadyExistsException(BaseAPIException):
    """Prevents duplicate registration by email."""

    def __init__(self, detail: str = "An account with this email already exists."):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


# ============== Staff & Permissions ==============


class PermissionDeniedException(BaseAPIException):
    """Caller can see the resource but lacks authority to change it."""

    def __init__(
        self, detail: str = "You do not have the required permissions for this action."
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


# ============== General Operational Exceptions ==============


class ResourceNotFoundException(BaseAPIException):
    """Generic fallback for missing resources."""

    def __init__(self, detail: str = "The requested information could not be found."):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class ConflictException(BaseAPIException):
    """Request clashes with existing state."""

    def __init__(self, detail: str = "The request conflicts with the current state."):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class InvalidFieldException(BaseAPIException):
    """Field-level validation failure. Nothing is written."""

    def __init__(self, field: str, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error={"field": field},
        )
        self.field = field


# ============== Tickets ==============


class TicketNotFoundException(ResourceNotFoundException):
    """
    Raised for missing tickets AND for tickets the caller may not view.
    The two cases must be indistinguishable.
    """

    def __init__(self, detail: str = "Ticket not found."):
        super().__init__(detail=detail)


class InvalidStatusTransitionException(BaseAPIException):
    def __init__(self, current: str, requested: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot move ticket from '{current}' to '{requested}'.",
            error={"field": "status", "current": current, "requested": requested},
        )


# ============== Downstream ==============


class StorageException(BaseAPIException):
    """Object store refused or failed an operation."""

    def __init__(self, detail: str = "File storage is unavailable. Please try again."):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
        )
