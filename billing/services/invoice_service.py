import logging
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from ..events import emit_on_commit, invoice_changed
from ..models import Business, Customer, Invoice, InvoiceActivity, LineItem, Payment
from ..validation import (
    ErrorCode,
    FieldError,
    InvalidStateError,
    LineItemData,
    NotFoundError,
    ValidationError,
    line_total,
    parse_line_items,
    persistence_guard,
)
from ..validation.schemas import MONEY_PLACES, to_decimal
from .customer_service import CustomerService

logger = logging.getLogger(__name__)


class InvoiceService:
    """Invoice ledger: the only writer of invoices, line items and payments.

    Every mutation runs in one transaction holding the invoice row lock, so
    ``replace_items``, ``mark_paid`` and edit-request submission are
    serialized per invoice.
    """

    @staticmethod
    def line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
        return line_total(quantity, unit_price)

    @staticmethod
    def calculate_totals(items: Iterable[LineItemData]) -> Decimal:
        total = sum((item.total_price for item in items), Decimal('0.00'))
        return total.quantize(MONEY_PLACES)

    @staticmethod
    def generate_invoice_number(business: Business, invoice_date: date) -> str:
        # Must run inside a transaction; the business row lock serializes numbering.
        Business.objects.select_for_update().get(pk=business.pk)

        prefix = f"{settings.BILLING_INVOICE_PREFIX}-{invoice_date.year}-"
        existing = set(
            Invoice.objects.filter(business=business, invoice_number__startswith=prefix)
            .values_list('invoice_number', flat=True)
        )
        sequence = len(existing) + 1
        while f"{prefix}{sequence:04d}" in existing:
            sequence += 1
        return f"{prefix}{sequence:04d}"

    @staticmethod
    def lock_invoice(invoice_or_id: Any) -> Invoice:
        pk = getattr(invoice_or_id, 'pk', invoice_or_id)
        try:
            return Invoice.objects.select_for_update().get(pk=pk)
        except Invoice.DoesNotExist:
            raise NotFoundError(f"Invoice {pk} not found")

    @staticmethod
    def snapshot_items(invoice: Invoice) -> List[Dict[str, str]]:
        return [
            LineItemData(item.item_name, to_decimal(item.quantity), to_decimal(item.unit_price)).to_dict()
            for item in invoice.items.all()
        ]

    @staticmethod
    def _insert_items(invoice: Invoice, items: List[LineItemData]) -> None:
        LineItem.objects.bulk_create([
            LineItem(
                invoice=invoice,
                item_name=item.item_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
                sort_order=idx,
            )
            for idx, item in enumerate(items)
        ])

    @classmethod
    @persistence_guard
    @transaction.atomic
    def create_invoice(cls, business: Business, customer: Customer, invoice_date: Optional[date] = None,
                       items: Optional[List[Any]] = None, user=None) -> Invoice:
        parsed = parse_line_items(items)
        invoice_date = invoice_date or timezone.localdate()

        terms = CustomerService.payment_terms_for(business, customer)
        invoice_number = cls.generate_invoice_number(business, invoice_date)

        invoice = Invoice.objects.create(
            business=business,
            customer=customer,
            invoice_number=invoice_number,
            status=Invoice.Status.SENT,
            invoice_date=invoice_date,
            due_date=invoice_date + timedelta(days=terms),
            total_amount=cls.calculate_totals(parsed),
            paid_amount=Decimal('0.00'),
        )
        cls._insert_items(invoice, parsed)

        cls.log_activity(
            invoice, user, InvoiceActivity.ActionType.CREATED,
            f"Invoice {invoice_number} created",
            metadata={'total_amount': str(invoice.total_amount), 'payment_terms_days': terms},
        )
        emit_on_commit(invoice_changed, sender=Invoice, instance=invoice, action="created")

        logger.info(f"Invoice {invoice.id} ({invoice_number}) created for business {business.id}")
        return invoice

    @classmethod
    @persistence_guard
    @transaction.atomic
    def mark_paid(cls, invoice_id: Any, amount: Any = None, user=None,
                  payment_method: str = Payment.Method.MANUAL) -> Invoice:
        invoice = cls.lock_invoice(invoice_id)

        if invoice.status == Invoice.Status.PAID:
            logger.warning(f"Rejected mark_paid on invoice {invoice.id}: already paid")
            raise InvalidStateError(
                f"Invoice {invoice.invoice_number} is already paid",
                code=ErrorCode.INVOICE_ALREADY_PAID,
            )

        amount = invoice.total_amount if amount is None else cls._parse_amount(amount, invoice.total_amount)

        invoice.status = Invoice.Status.PAID
        invoice.paid_amount = amount
        invoice.paid_at = timezone.now()
        invoice.save(update_fields=['status', 'paid_amount', 'paid_at', 'updated_at'])

        Payment.objects.create(
            invoice=invoice,
            amount=amount,
            payment_date=timezone.localdate(),
            payment_method=payment_method,
            recorded_by=user,
        )

        cls.log_activity(
            invoice, user, InvoiceActivity.ActionType.PAID,
            f"Payment of {amount} recorded",
            metadata={'amount': str(amount), 'payment_method': str(payment_method)},
        )
        emit_on_commit(invoice_changed, sender=Invoice, instance=invoice, action="paid")

        logger.info(f"Invoice {invoice.id} marked paid: {amount}")
        return invoice

    @staticmethod
    def _parse_amount(amount: Any, limit: Decimal) -> Decimal:
        try:
            value = to_decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            value = None

        if value is None or value.as_tuple().exponent < -2:
            code, message = ErrorCode.FIELD_INVALID_FORMAT, "Amount must be a number with at most 2 decimal places."
        elif value < 0:
            code, message = ErrorCode.FIELD_OUT_OF_RANGE, "Amount cannot be negative."
        elif value > limit:
            code, message = ErrorCode.FIELD_OUT_OF_RANGE, f"Amount cannot exceed the invoice total of {limit}."
        else:
            return value.quantize(MONEY_PLACES)

        raise ValidationError(
            message="Invalid payment amount.",
            fields=[FieldError(field="amount", code=code.value, message=message)],
        )

    @classmethod
    @persistence_guard
    @transaction.atomic
    def replace_items(cls, invoice_id: Any, new_items: List[Any], user=None) -> Invoice:
        parsed = parse_line_items(new_items)
        invoice = cls.lock_invoice(invoice_id)

        if invoice.is_paid:
            logger.warning(f"Rejected item replacement on paid invoice {invoice.id}")
            raise InvalidStateError(
                f"Invoice {invoice.invoice_number} is paid and can no longer be changed",
                code=ErrorCode.INVOICE_ALREADY_PAID,
            )

        old_total = invoice.total_amount
        invoice.items.all().delete()
        cls._insert_items(invoice, parsed)

        invoice.total_amount = cls.calculate_totals(parsed)
        invoice.version += 1
        invoice.save(update_fields=['total_amount', 'version', 'updated_at'])

        cls.log_activity(
            invoice, user, InvoiceActivity.ActionType.ITEMS_REPLACED,
            f"Line items replaced ({len(parsed)} items)",
            metadata={'old_total': str(old_total), 'new_total': str(invoice.total_amount)},
        )
        emit_on_commit(invoice_changed, sender=Invoice, instance=invoice, action="items_replaced")

        logger.info(f"Invoice {invoice.id} items replaced: total {old_total} -> {invoice.total_amount}")
        return invoice

    @classmethod
    def mark_overdue(cls, today: Optional[date] = None) -> int:
        today = today or timezone.localdate()
        candidates = Invoice.objects.filter(
            status=Invoice.Status.SENT, due_date__lt=today
        ).values_list('id', flat=True)

        count = 0
        for invoice_id in list(candidates):
            if cls._mark_one_overdue(invoice_id, today):
                count += 1

        if count:
            logger.info(f"Marked {count} invoices as overdue")
        return count

    @classmethod
    @persistence_guard
    @transaction.atomic
    def _mark_one_overdue(cls, invoice_id: int, today: date) -> bool:
        invoice = cls.lock_invoice(invoice_id)
        # Paid or already handled since the candidate query ran.
        if invoice.status != Invoice.Status.SENT or invoice.due_date >= today:
            return False

        invoice.status = Invoice.Status.OVERDUE
        invoice.save(update_fields=['status', 'updated_at'])

        cls.log_activity(
            invoice, None, InvoiceActivity.ActionType.OVERDUE,
            f"Invoice became overdue (due {invoice.due_date.isoformat()})",
            is_system=True,
        )
        emit_on_commit(invoice_changed, sender=Invoice, instance=invoice, action="overdue")
        return True

    @staticmethod
    def invoices_for_business(business: Business, status: Optional[str] = None):
        qs = Invoice.objects.filter(business=business).select_related('customer').prefetch_related('items')
        if status:
            qs = qs.filter(status=status)
        return qs

    @staticmethod
    def invoices_for_customer(customer: Customer, status: Optional[str] = None):
        qs = Invoice.objects.filter(customer=customer).select_related('business').prefetch_related('items')
        if status:
            qs = qs.filter(status=status)
        return qs

    @staticmethod
    def get_stats(invoices) -> Dict[str, Any]:
        unpaid = ~Q(status=Invoice.Status.PAID)
        stats = invoices.aggregate(
            total_invoices=Count('id'),
            paid_invoices=Count('id', filter=Q(status=Invoice.Status.PAID)),
            overdue_invoices=Count('id', filter=Q(status=Invoice.Status.OVERDUE)),
            total_billed=Sum('total_amount'),
            total_collected=Sum('paid_amount', filter=Q(status=Invoice.Status.PAID)),
            outstanding=Sum('total_amount', filter=unpaid),
        )
        for key in ('total_billed', 'total_collected', 'outstanding'):
            stats[key] = (stats[key] or Decimal('0.00')).quantize(MONEY_PLACES)
        stats['unpaid_invoices'] = stats['total_invoices'] - stats['paid_invoices']
        return stats

    @staticmethod
    def log_activity(invoice: Invoice, user, action: str, description: str,
                     metadata: Dict = None, is_system: bool = False) -> InvoiceActivity:
        return InvoiceActivity.objects.create(
            invoice=invoice,
            user=user if user is not None and getattr(user, 'is_authenticated', False) else None,
            action=action,
            description=description,
            metadata=metadata or {},
            is_system=is_system or user is None,
        )
