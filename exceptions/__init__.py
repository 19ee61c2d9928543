"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,

    # Spreadsheet
    SpreadsheetImportError,
    MappingError,

    # Scan / product
    EmptyScanError,
    ProductNotFoundError,

    # Sessions
    SessionNotFoundError,
    SessionExistsError,
    InvalidStateError,
    TransportError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",

    # Spreadsheet
    "SpreadsheetImportError",
    "MappingError",

    # Scan / product
    "EmptyScanError",
    "ProductNotFoundError",

    # Sessions
    "SessionNotFoundError",
    "SessionExistsError",
    "InvalidStateError",
    "TransportError",
]
