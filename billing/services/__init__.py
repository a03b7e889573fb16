"""
BillDesk Services Layer

- Models: data + constraints
- Services: business rules, transactions, change notifications
- API: request parsing, auth, permission checks, response mapping
"""

from .customer_service import AccountService, CustomerService, normalize_phone
from .invoice_service import InvoiceService
from .edit_request_service import EditRequestService

__all__ = [
    "AccountService",
    "CustomerService",
    "EditRequestService",
    "InvoiceService",
    "normalize_phone",
]
