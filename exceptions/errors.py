"""
Custom exception classes for the application.

Every error carries a machine-readable code, a message and an HTTP status so
routes can return it as-is.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "SESSION_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


# ===================
# SPREADSHEET ERRORS
# ===================

class SpreadsheetImportError(ValidationError):
    """Spreadsheet is empty or could not be read."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="SPREADSHEET_IMPORT_ERROR",
            message=message,
            details=details
        )


class MappingError(ValidationError):
    """Selected columns yield no products."""

    def __init__(self, mapping: dict, row_count: int):
        super().__init__(
            code="MAPPING_ERROR",
            message="No products could be extracted with the selected columns",
            details={"mapping": mapping, "rows": row_count}
        )


# ===================
# SCAN / PRODUCT ERRORS
# ===================

class EmptyScanError(ValidationError):
    """Scanned input was blank."""

    def __init__(self):
        super().__init__(
            code="EMPTY_SCAN",
            message="Scanned code is empty"
        )


class ProductNotFoundError(NotFoundError):
    """Product id not present in the working set."""

    def __init__(self, product_id: str):
        super().__init__(
            resource="Product",
            identifier=product_id,
            code="PRODUCT_NOT_FOUND"
        )


# ===================
# SESSION ERRORS
# ===================

class SessionNotFoundError(NotFoundError):
    """Unknown or expired session id."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Session",
            identifier=session_id,
            code="SESSION_NOT_FOUND"
        )


class SessionExistsError(ConflictError):
    """A live session already uses this id."""

    def __init__(self, session_id: str):
        super().__init__(
            code="SESSION_EXISTS",
            message="Session with this id already exists",
            details={"session_id": session_id}
        )


class InvalidStateError(ConflictError):
    """Operation not allowed in the current counting state."""

    def __init__(self, current_state: str, operation: str):
        super().__init__(
            code="INVALID_SESSION_STATE",
            message=f"Cannot {operation} while session is {current_state}",
            details={"state": current_state, "operation": operation}
        )


class TransportError(ExternalServiceError):
    """Sync backend could not be reached or refused the request."""

    def __init__(
        self,
        backend: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            service=f"{backend}_transport",
            message=message,
            details=details
        )
        self.backend = backend
