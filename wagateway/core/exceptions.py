"""Custom exceptions for the WhatsApp gateway"""

from typing import Any


class AppException(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Any = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ValidationError(AppException):
    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=400, details=details)


class AuthenticationError(AppException):
    def __init__(self, message: str = "Invalid API key"):
        super().__init__(message=message, status_code=401)


class SessionNotActiveError(AppException):
    """Raised when a tenant has no open, authenticated connection."""

    def __init__(self, tenant_id: str, status: str | None = None):
        details = f"No active WhatsApp session for tenant '{tenant_id}'"
        if status:
            details = f"{details} (status: {status})"
        super().__init__(
            message="WhatsApp session is not active",
            status_code=500,
            details=details,
        )
        self.tenant_id = tenant_id


class ConnectionOpenError(AppException):
    def __init__(self, tenant_id: str, reason: str):
        super().__init__(
            message="Failed to connect WhatsApp",
            status_code=500,
            details=reason,
        )
        self.tenant_id = tenant_id


class MessageSendError(AppException):
    def __init__(self, reason: str):
        super().__init__(
            message="Failed to send WhatsApp message",
            status_code=500,
            details=reason,
        )


class ExternalServiceError(AppException):
    def __init__(self, service: str, message: str):
        super().__init__(
            message=f"{service} error: {message}",
            status_code=502,
            details={"service": service},
        )
        self.service = service
