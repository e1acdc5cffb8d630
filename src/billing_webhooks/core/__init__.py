"""Core package

Only lightweight symbols are exposed here to avoid import cycles with services.
"""
from .config import settings
from .responses import (
    APIResponse, success_response, error_response,
    BusinessException, AuthenticationException,
    ConfigurationException, ExternalServiceException,
)

__all__ = [
    'settings',
    'APIResponse',
    'success_response',
    'error_response',
    'BusinessException',
    'AuthenticationException',
    'ConfigurationException',
    'ExternalServiceException',
]
