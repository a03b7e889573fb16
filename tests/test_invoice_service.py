from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.db import DatabaseError

from billing.models import Invoice, InvoiceActivity, LineItem, Payment
from billing.services import InvoiceService
from billing.validation import ErrorCode, InvalidStateError, NotFoundError, PersistenceError, ValidationError
from billing.validation.schemas import MAX_PAYMENT_TERMS_DAYS
from tests.conftest import INVOICE_DATE, WIDGETS
from tests.factories import BusinessCustomerFactory, BusinessFactory, CustomerFactory, LineItemFactory


def stored_total(invoice):
    return sum((item.total_price for item in invoice.items.all()), Decimal("0.00"))


@pytest.mark.django_db
class TestCreateInvoice:
    def test_create_invoice_persists_items_and_total(self, invoice):
        assert invoice.pk is not None
        assert invoice.status == Invoice.Status.SENT
        assert invoice.total_amount == Decimal("20.00")
        assert invoice.paid_amount == Decimal("0.00")
        assert invoice.version == 1

        items = list(invoice.items.all())
        assert len(items) == 1
        assert items[0].item_name == "Widget"
        assert items[0].quantity == Decimal("2.00")
        assert items[0].total_price == Decimal("20.00")

    def test_due_date_follows_link_payment_terms(self, business, customer):
        BusinessCustomerFactory(business=business, customer=customer, payment_terms_days=15)
        invoice = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=WIDGETS)
        assert invoice.due_date == INVOICE_DATE + timedelta(days=15)

    def test_due_date_defaults_to_thirty_days_without_link(self, business, customer):
        invoice = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=WIDGETS)
        assert invoice.due_date == date(2024, 3, 31)

    def test_invoice_numbers_are_sequential_per_business(self, business, customer, link):
        first = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=WIDGETS)
        second = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=WIDGETS)
        other = InvoiceService.create_invoice(BusinessFactory(), customer, invoice_date=INVOICE_DATE, items=WIDGETS)

        assert first.invoice_number == "INV-2024-0001"
        assert second.invoice_number == "INV-2024-0002"
        assert other.invoice_number == "INV-2024-0001"

    def test_invoice_prefix_is_configurable(self, business, customer, settings):
        settings.BILLING_INVOICE_PREFIX = "BD"
        invoice = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=WIDGETS)
        assert invoice.invoice_number == "BD-2024-0001"

    def test_total_is_sum_of_rounded_line_totals(self, business, customer):
        items = [
            {"item_name": "Bolt", "quantity": "1.5", "unit_price": "3.33"},
            {"item_name": "Nut", "quantity": "3", "unit_price": "0.25"},
        ]
        invoice = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=items)

        assert invoice.total_amount == Decimal("5.75")
        assert invoice.total_amount == stored_total(invoice)

    def test_empty_items_rejected_and_nothing_persisted(self, business, customer):
        with pytest.raises(ValidationError) as exc_info:
            InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=[])

        assert exc_info.value.fields[0].field == "items"
        assert Invoice.objects.count() == 0
        assert LineItem.objects.count() == 0

    def test_invalid_item_reports_every_field(self, business, customer):
        items = [
            {"item_name": "Widget", "quantity": "2", "unit_price": "10"},
            {"item_name": "", "quantity": "-1", "unit_price": "abc"},
        ]
        with pytest.raises(ValidationError) as exc_info:
            InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=items)

        fields = {error.field for error in exc_info.value.fields}
        assert fields == {"items.1.item_name", "items.1.quantity", "items.1.unit_price"}
        assert Invoice.objects.count() == 0

    def test_largest_storable_total_round_trips(self, business, customer):
        items = [{"item_name": "Plant", "quantity": "999999999.99", "unit_price": "10000.00"}]
        invoice = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=items)

        invoice.refresh_from_db()
        assert invoice.total_amount == Decimal("9999999999900.00")
        assert invoice.total_amount == stored_total(invoice)

    def test_total_too_large_to_store_rejected(self, business, customer):
        items = [{"item_name": "Plant", "quantity": "999999999.99", "unit_price": "999999999.99"}]

        with pytest.raises(ValidationError) as exc_info:
            InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=items)

        assert exc_info.value.fields[0].field == "items.0"
        assert Invoice.objects.count() == 0
        assert LineItem.objects.count() == 0

    def test_longest_payment_terms(self, business, customer):
        BusinessCustomerFactory(business=business, customer=customer, payment_terms_days=MAX_PAYMENT_TERMS_DAYS)
        invoice = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=WIDGETS)
        assert invoice.due_date == INVOICE_DATE + timedelta(days=MAX_PAYMENT_TERMS_DAYS)

    def test_storage_failure_rolls_back(self, business, customer, monkeypatch):
        def broken_insert(invoice, items):
            raise DatabaseError("disk full")

        monkeypatch.setattr(InvoiceService, "_insert_items", staticmethod(broken_insert))

        with pytest.raises(PersistenceError):
            InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=WIDGETS)

        assert Invoice.objects.count() == 0

    def test_creation_is_logged_as_activity(self, invoice):
        activity = invoice.activities.get()
        assert activity.action == InvoiceActivity.ActionType.CREATED
        assert invoice.invoice_number in activity.description


@pytest.mark.django_db
class TestMarkPaid:
    def test_mark_paid_defaults_to_total(self, invoice, business):
        paid = InvoiceService.mark_paid(invoice.pk, user=business.user)

        assert paid.status == Invoice.Status.PAID
        assert paid.paid_amount == Decimal("20.00")
        assert paid.paid_at is not None

        payment = Payment.objects.get(invoice=invoice)
        assert payment.amount == Decimal("20.00")
        assert payment.payment_method == Payment.Method.MANUAL
        assert payment.recorded_by == business.user

    def test_mark_paid_with_explicit_amount(self, invoice):
        paid = InvoiceService.mark_paid(invoice.pk, amount="15.50", payment_method=Payment.Method.UPI)
        assert paid.paid_amount == Decimal("15.50")
        assert Payment.objects.get(invoice=invoice).payment_method == Payment.Method.UPI

    def test_mark_paid_twice_rejected(self, invoice):
        InvoiceService.mark_paid(invoice.pk)

        with pytest.raises(InvalidStateError) as exc_info:
            InvoiceService.mark_paid(invoice.pk, amount="99.00")

        assert exc_info.value.code == ErrorCode.INVOICE_ALREADY_PAID.value
        invoice.refresh_from_db()
        assert invoice.status == Invoice.Status.PAID
        assert invoice.paid_amount == Decimal("20.00")
        assert Payment.objects.filter(invoice=invoice).count() == 1

    def test_negative_amount_rejected(self, invoice):
        with pytest.raises(ValidationError) as exc_info:
            InvoiceService.mark_paid(invoice.pk, amount="-1")

        assert exc_info.value.fields[0].field == "amount"
        invoice.refresh_from_db()
        assert invoice.status == Invoice.Status.SENT
        assert Payment.objects.count() == 0

    def test_overpayment_rejected(self, invoice):
        with pytest.raises(ValidationError) as exc_info:
            InvoiceService.mark_paid(invoice.pk, amount="20.01")

        error = exc_info.value.fields[0]
        assert (error.field, error.code) == ("amount", ErrorCode.FIELD_OUT_OF_RANGE.value)
        invoice.refresh_from_db()
        assert invoice.status == Invoice.Status.SENT
        assert Payment.objects.count() == 0

    def test_exact_total_accepted(self, invoice):
        assert InvoiceService.mark_paid(invoice.pk, amount="20.00").paid_amount == Decimal("20.00")

    def test_unknown_invoice(self, db):
        with pytest.raises(NotFoundError):
            InvoiceService.mark_paid(999999)

    def test_overdue_invoice_can_be_paid(self, invoice):
        Invoice.objects.filter(pk=invoice.pk).update(status=Invoice.Status.OVERDUE)
        paid = InvoiceService.mark_paid(invoice.pk)
        assert paid.status == Invoice.Status.PAID


@pytest.mark.django_db
class TestReplaceItems:
    def test_replace_items_recomputes_total_and_bumps_version(self, invoice):
        updated = InvoiceService.replace_items(invoice.pk, [
            {"item_name": "Widget", "quantity": "3", "unit_price": "10.00"},
            {"item_name": "Gadget", "quantity": "1", "unit_price": "4.99"},
        ])

        assert updated.total_amount == Decimal("34.99")
        assert updated.total_amount == stored_total(updated)
        assert updated.version == 2
        assert [item.item_name for item in updated.items.all()] == ["Widget", "Gadget"]
        assert LineItem.objects.filter(invoice=invoice).count() == 2

    def test_replace_items_on_paid_invoice_rejected(self, invoice):
        InvoiceService.mark_paid(invoice.pk)

        with pytest.raises(InvalidStateError):
            InvoiceService.replace_items(invoice.pk, [{"item_name": "Free", "quantity": "1", "unit_price": "0"}])

        invoice.refresh_from_db()
        assert invoice.total_amount == Decimal("20.00")
        assert invoice.version == 1
        assert [item.item_name for item in invoice.items.all()] == ["Widget"]

    def test_replace_items_with_no_items_rejected(self, invoice):
        with pytest.raises(ValidationError):
            InvoiceService.replace_items(invoice.pk, [])

        assert invoice.items.count() == 1


@pytest.mark.django_db
class TestSnapshotAndTotals:
    def test_snapshot_items(self, invoice):
        assert InvoiceService.snapshot_items(invoice) == [
            {"item_name": "Widget", "quantity": "2.00", "unit_price": "10.00", "total_price": "20.00"},
        ]

    def test_line_total_rounds_half_up(self):
        assert InvoiceService.line_total(Decimal("0.5"), Decimal("0.05")) == Decimal("0.03")

    def test_line_item_save_recomputes_total(self, invoice):
        item = LineItemFactory(invoice=invoice, quantity=Decimal("4"), unit_price=Decimal("2.50"))
        assert item.total_price == Decimal("10.00")


@pytest.mark.django_db
class TestMarkOverdue:
    def test_mark_overdue(self, invoice, business, customer):
        paid = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=WIDGETS)
        InvoiceService.mark_paid(paid.pk)
        current = InvoiceService.create_invoice(business, customer, invoice_date=date(2024, 4, 20), items=WIDGETS)

        count = InvoiceService.mark_overdue(today=date(2024, 4, 15))

        assert count == 1
        invoice.refresh_from_db()
        paid.refresh_from_db()
        current.refresh_from_db()
        assert invoice.status == Invoice.Status.OVERDUE
        assert paid.status == Invoice.Status.PAID
        assert current.status == Invoice.Status.SENT
        assert invoice.activities.filter(action=InvoiceActivity.ActionType.OVERDUE, is_system=True).exists()

    def test_mark_overdue_is_idempotent(self, invoice):
        assert InvoiceService.mark_overdue(today=date(2024, 5, 1)) == 1
        assert InvoiceService.mark_overdue(today=date(2024, 5, 1)) == 0

    def test_due_date_itself_is_not_overdue(self, invoice):
        assert InvoiceService.mark_overdue(today=invoice.due_date) == 0


@pytest.mark.django_db
class TestStats:
    def test_get_stats(self, business, customer, invoice):
        second = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=[
            {"item_name": "Service", "quantity": "1", "unit_price": "5.00"},
        ])
        InvoiceService.mark_paid(second.pk)

        stats = InvoiceService.get_stats(InvoiceService.invoices_for_business(business))

        assert stats["total_invoices"] == 2
        assert stats["paid_invoices"] == 1
        assert stats["unpaid_invoices"] == 1
        assert stats["total_billed"] == Decimal("25.00")
        assert stats["total_collected"] == Decimal("5.00")
        assert stats["outstanding"] == Decimal("20.00")

    def test_invoices_scoped_to_customer(self, business, invoice):
        other_customer = CustomerFactory()
        InvoiceService.create_invoice(business, other_customer, invoice_date=INVOICE_DATE, items=WIDGETS)

        assert list(InvoiceService.invoices_for_customer(invoice.customer)) == [invoice]
