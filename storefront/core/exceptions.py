from fastapi import HTTPException, status
from typing import Any, Dict
from storefront.core.error_codes import ErrorCode


class AppException(HTTPException):
    """Request-level failure rendered as ``{"message", "error_code", **extra}``."""

    default_status = status.HTTP_400_BAD_REQUEST
    default_code = ErrorCode.INTERNAL_ERROR
    default_message = "Request failed."

    def __init__(
        self,
        message: str | None = None,
        *,
        error_code: ErrorCode | None = None,
        status_code: int | None = None,
        extra: Dict[str, Any] | None = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_code
        self.extra = extra or {}
        super().__init__(
            status_code=status_code or self.default_status,
            detail={"error_code": self.error_code, "message": self.message, **self.extra},
        )


class InvalidInput(AppException):
    default_status = status.HTTP_400_BAD_REQUEST
    default_code = ErrorCode.INVALID_INPUT
    default_message = "Invalid request body."


class Conflict(AppException):
    default_status = status.HTTP_409_CONFLICT
    default_code = ErrorCode.CONFLICT
    default_message = "Username or email is already in use."


class Unauthorized(AppException):
    default_status = status.HTTP_401_UNAUTHORIZED
    default_code = ErrorCode.INVALID_CREDENTIALS
    default_message = "Invalid username or password."


class VerificationRequired(AppException):
    default_status = status.HTTP_403_FORBIDDEN
    default_code = ErrorCode.EMAIL_NOT_VERIFIED
    default_message = "Check your inbox to verify your account."


class NotFound(AppException):
    default_status = status.HTTP_404_NOT_FOUND
    default_code = ErrorCode.USER_NOT_FOUND
    default_message = "User not found."


class AlreadyVerified(AppException):
    default_status = status.HTTP_400_BAD_REQUEST
    default_code = ErrorCode.ALREADY_VERIFIED
    default_message = "This account is already verified."


class FeatureDisabled(AppException):
    default_status = status.HTTP_400_BAD_REQUEST
    default_code = ErrorCode.FEATURE_DISABLED
    default_message = "Email verification is disabled."


class StartupError(Exception):
    """Process-level failure while bringing up the data store."""

    error_code = ErrorCode.STARTUP_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SchemaError(StartupError):
    error_code = ErrorCode.SCHEMA_ERROR
