"""
Custom Exceptions for Billflow

Hierarchical exception classes for proper error handling across layers.
Each class maps to one HTTP status in billflow.main.
"""

from typing import Optional, Dict, Any


class BillflowError(Exception):
    """Base exception for all Billflow errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ValidationError(BillflowError):
    """Raised when input validation fails."""
    pass


class AuthError(BillflowError):
    """Raised when the caller's identity is missing or invalid."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class SignatureError(BillflowError):
    """Raised when a gateway signature does not match the shared secret."""
    pass


class DatabaseError(BillflowError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class GatewayError(BillflowError):
    """Raised when a call to the payment gateway API fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if status_code:
            details["status_code"] = status_code
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class ConfigurationError(BillflowError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
