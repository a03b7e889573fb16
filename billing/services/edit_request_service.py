import logging
from typing import Any, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..events import edit_request_changed, emit_on_commit
from ..models import Business, Customer, EditRequest, InvoiceActivity
from ..validation import (
    ErrorCode,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    parse_line_items,
    persistence_guard,
)
from .invoice_service import InvoiceService

logger = logging.getLogger(__name__)


class EditRequestService:
    """Customer-proposed line item changes and their review.

    ``pending`` moves to ``approved`` or ``rejected`` exactly once. Approval
    replaces the invoice's items in the same transaction as the status change,
    so either both happen or neither does.
    """

    LAST_APPROVAL_WINS = "last_approval_wins"
    REJECT_STALE = "reject_stale"

    @classmethod
    def conflict_policy(cls) -> str:
        return getattr(settings, "BILLING_EDIT_REQUEST_CONFLICT_POLICY", cls.LAST_APPROVAL_WINS)

    @classmethod
    @persistence_guard
    @transaction.atomic
    def submit(cls, invoice_id: Any, requester: Customer, requested_items: List[Any]) -> EditRequest:
        parsed = parse_line_items(requested_items, field_name="requested_items")
        invoice = InvoiceService.lock_invoice(invoice_id)

        if requester is None or invoice.customer_id != requester.pk:
            raise PermissionDeniedError("Only the invoiced customer can request changes to this invoice")

        if invoice.is_paid:
            logger.warning(f"Rejected edit request on paid invoice {invoice.id}")
            raise InvalidStateError(
                f"Invoice {invoice.invoice_number} is paid and can no longer be changed",
                code=ErrorCode.INVOICE_ALREADY_PAID,
            )

        edit_request = EditRequest.objects.create(
            invoice=invoice,
            requested_by=requester,
            original_items=InvoiceService.snapshot_items(invoice),
            requested_items=[item.to_dict() for item in parsed],
            invoice_version=invoice.version,
            status=EditRequest.Status.PENDING,
        )

        InvoiceService.log_activity(
            invoice, requester.user, InvoiceActivity.ActionType.EDIT_REQUESTED,
            f"{requester.customer_name} requested changes to {len(parsed)} line items",
            metadata={'edit_request_id': edit_request.id},
        )
        emit_on_commit(edit_request_changed, sender=EditRequest, instance=edit_request, action="submitted")

        logger.info(f"Edit request {edit_request.id} submitted on invoice {invoice.id} by customer {requester.id}")
        return edit_request

    @staticmethod
    def _lock_request(request_id: Any) -> EditRequest:
        pk = getattr(request_id, 'pk', request_id)
        try:
            return EditRequest.objects.select_for_update().get(pk=pk)
        except EditRequest.DoesNotExist:
            raise NotFoundError(f"Edit request {pk} not found")

    @staticmethod
    def _ensure_pending(edit_request: EditRequest) -> None:
        if not edit_request.is_pending:
            logger.warning(f"Rejected review of edit request {edit_request.id}: already {edit_request.status}")
            raise InvalidStateError(
                f"Edit request {edit_request.id} has already been {edit_request.status}",
                code=ErrorCode.EDIT_REQUEST_ALREADY_REVIEWED,
            )

    @staticmethod
    def _transition(edit_request: EditRequest, new_status: str, reviewer) -> None:
        reviewed_at = timezone.now()
        reviewed_by = reviewer if reviewer is not None and reviewer.is_authenticated else None

        updated = EditRequest.objects.filter(
            pk=edit_request.pk, status=EditRequest.Status.PENDING
        ).update(status=new_status, reviewed_at=reviewed_at, reviewed_by=reviewed_by)
        if updated != 1:
            raise InvalidStateError(
                f"Edit request {edit_request.id} is no longer pending",
                code=ErrorCode.EDIT_REQUEST_ALREADY_REVIEWED,
            )

        edit_request.status = new_status
        edit_request.reviewed_at = reviewed_at
        edit_request.reviewed_by = reviewed_by

    @classmethod
    @persistence_guard
    @transaction.atomic
    def approve(cls, request_id: Any, reviewer=None) -> EditRequest:
        edit_request = cls._lock_request(request_id)
        cls._ensure_pending(edit_request)

        if cls.conflict_policy() == cls.REJECT_STALE:
            invoice = InvoiceService.lock_invoice(edit_request.invoice_id)
            if invoice.version != edit_request.invoice_version:
                logger.warning(
                    f"Rejected stale edit request {edit_request.id}: "
                    f"proposed against version {edit_request.invoice_version}, invoice is at {invoice.version}"
                )
                raise InvalidStateError(
                    f"Invoice {invoice.invoice_number} changed after this request was submitted",
                    code=ErrorCode.STALE_EDIT_REQUEST,
                )

        invoice = InvoiceService.replace_items(edit_request.invoice_id, edit_request.requested_items, user=reviewer)
        cls._transition(edit_request, EditRequest.Status.APPROVED, reviewer)

        InvoiceService.log_activity(
            invoice, reviewer, InvoiceActivity.ActionType.EDIT_APPROVED,
            f"Edit request {edit_request.id} approved",
            metadata={'edit_request_id': edit_request.id, 'new_total': str(invoice.total_amount)},
        )
        emit_on_commit(edit_request_changed, sender=EditRequest, instance=edit_request, action="approved")

        logger.info(f"Edit request {edit_request.id} approved; invoice {invoice.id} total {invoice.total_amount}")
        return edit_request

    @classmethod
    @persistence_guard
    @transaction.atomic
    def reject(cls, request_id: Any, reviewer=None) -> EditRequest:
        edit_request = cls._lock_request(request_id)
        cls._ensure_pending(edit_request)
        cls._transition(edit_request, EditRequest.Status.REJECTED, reviewer)

        InvoiceService.log_activity(
            edit_request.invoice, reviewer, InvoiceActivity.ActionType.EDIT_REJECTED,
            f"Edit request {edit_request.id} rejected",
            metadata={'edit_request_id': edit_request.id},
        )
        emit_on_commit(edit_request_changed, sender=EditRequest, instance=edit_request, action="rejected")

        logger.info(f"Edit request {edit_request.id} rejected")
        return edit_request

    @staticmethod
    def pending_for_business(business: Business, status: Optional[str] = EditRequest.Status.PENDING):
        qs = EditRequest.objects.filter(invoice__business=business).select_related('invoice', 'requested_by')
        if status:
            qs = qs.filter(status=status)
        return qs

    @staticmethod
    def for_customer(customer: Customer):
        return EditRequest.objects.filter(requested_by=customer).select_related('invoice', 'invoice__business')
