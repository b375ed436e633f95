# Errors - single error shape for order-core callers
# Validation errors are raised as-is, anything unexpected becomes ProcessingError

from typing import Any, Dict, Optional


class OrderCoreError(Exception):
    """Base error for every order-core operation"""

    code = 'ORDER_CORE_ERROR'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ok': False,
            'error': {
                'message': self.message,
                'code': self.code,
                'details': self.details,
            }
        }


class ValidationError(OrderCoreError):
    """Bad input shape, type or range"""

    code = 'VALIDATION_ERROR'


class ProcessingError(OrderCoreError):
    """Unexpected failure inside a public operation; wraps the original exception"""

    code = 'PROCESSING_ERROR'

    def __init__(self, message: str, cause: Optional[BaseException] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.cause is not None:
            payload['error']['cause'] = f"{type(self.cause).__name__}: {self.cause}"
        return payload


class CatalogSourceError(OrderCoreError):
    """Catalog could not be fetched or read"""

    code = 'CATALOG_SOURCE_ERROR'
