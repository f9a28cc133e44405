from typing import Optional, Any


class VaultError(Exception):
    """
    Base exception for the VaultSync application.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class BadRequestError(VaultError):
    """
    Raised when a request is well-formed but cannot be processed as sent.
    """
    def __init__(self, message: str = "Bad request", details: Optional[Any] = None, code: str = "BAD_REQUEST"):
        super().__init__(message, code=code, status_code=400, details=details)


class AuthenticationError(VaultError):
    """
    Raised when authentication fails.
    """
    def __init__(self, message: str = "Unauthorized", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)


class PermissionDeniedError(VaultError):
    """
    Raised when an authenticated user lacks the role for an operation.
    """
    def __init__(self, message: str = "Forbidden", details: Optional[Any] = None):
        super().__init__(message, code="FORBIDDEN", status_code=403, details=details)


class ResourceNotFoundError(VaultError):
    """
    Raised when a requested resource is not found.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class ConflictError(VaultError):
    """
    Raised when a write collides with existing state.
    """
    def __init__(self, message: str = "Conflict", details: Optional[Any] = None):
        super().__init__(message, code="CONFLICT", status_code=409, details=details)


class ExternalServiceError(VaultError):
    """
    Raised when an external service fails.
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None, code: str = "EXTERNAL_SERVICE_ERROR"):
        super().__init__(message, code=code, status_code=502, details=details)


class CRMError(ExternalServiceError):
    """
    Raised when the CRM API rejects a request or cannot be reached.
    """
    def __init__(self, message: str = "CRM request failed", status: Optional[int] = None, details: Optional[Any] = None):
        self.status = status
        super().__init__(message, details=details, code="CRM_ERROR")
