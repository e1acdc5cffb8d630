"""
Shared response models and exception classes
"""
from typing import Generic, TypeVar, Optional, Any
from pydantic import BaseModel
import logging

logger = logging.getLogger(__name__)

T = TypeVar('T')


class APIResponse(BaseModel, Generic[T]):
    """Standard API response envelope"""
    status: str  # "success" or "error"
    data: Optional[T] = None
    message: Optional[str] = None
    error_code: Optional[str] = None


class BusinessException(Exception):
    """Domain error carrying an HTTP status"""
    def __init__(self, message: str, error_code: str = None, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class AuthenticationException(BusinessException):
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, "AUTH_FAILED", 401)


class ConfigurationException(BusinessException):
    """Required credentials or endpoints are not configured"""
    def __init__(self, message: str = "Service is not configured"):
        super().__init__(message, "CONFIGURATION_ERROR", 500)


class ExternalServiceException(BusinessException):
    def __init__(self, service_name: str, message: str = None):
        msg = message or f"{service_name} request failed"
        super().__init__(msg, "EXTERNAL_SERVICE_ERROR", 502)


def success_response(data: Any = None, message: str = "OK") -> APIResponse:
    return APIResponse(status="success", data=data, message=message)


def error_response(
    message: str = "An error occurred",
    error_code: str = None,
    data: Any = None
) -> APIResponse:
    return APIResponse(
        status="error",
        message=message,
        error_code=error_code,
        data=data
    )


def mask_email(email: Optional[str]) -> str:
    """Keep the first three characters of an address for log output"""
    if not email:
        return "-"
    return f"{email[:3]}***"
