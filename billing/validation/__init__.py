"""
Centralized Validation Module

Domain-specific validation schemas and the error taxonomy shared by the
service layer and the API.

Domains:
- Line items: invoice creation, item replacement, edit requests
- Customers: registration and business-customer links
"""

from .schemas import (
    BusinessSchema,
    CustomerSchema,
    LineItemData,
    LineItemSchema,
    line_total,
    parse_line_items,
)
from .errors import (
    APIError,
    ErrorCode,
    ErrorResponse,
    FieldError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
    format_validation_errors,
    persistence_guard,
)

__all__ = [
    "BusinessSchema",
    "CustomerSchema",
    "LineItemData",
    "LineItemSchema",
    "line_total",
    "parse_line_items",
    "APIError",
    "ErrorCode",
    "ErrorResponse",
    "FieldError",
    "InvalidStateError",
    "NotFoundError",
    "PermissionDeniedError",
    "PersistenceError",
    "ValidationError",
    "format_validation_errors",
    "persistence_guard",
]
