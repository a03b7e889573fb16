import pytest

from billing.events import edit_request_changed, invoice_changed
from billing.models import EditRequest, Invoice
from billing.services import EditRequestService, InvoiceService
from billing.validation import ErrorCode, InvalidStateError
from tests.conftest import INVOICE_DATE, WIDGETS


@pytest.fixture
def received():
    calls = []

    def handler(sender, instance, action, **kwargs):
        calls.append((sender, instance.pk, action))

    invoice_changed.connect(handler)
    edit_request_changed.connect(handler)
    yield calls
    invoice_changed.disconnect(handler)
    edit_request_changed.disconnect(handler)


@pytest.mark.django_db
class TestChangeEvents:
    def test_created_event_sent_after_commit(self, business, customer, received, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            invoice = InvoiceService.create_invoice(business, customer, invoice_date=INVOICE_DATE, items=WIDGETS)

        assert received == []
        assert len(callbacks) == 1

        callbacks[0]()
        assert received == [(Invoice, invoice.pk, "created")]

    def test_mark_paid_event(self, invoice, received, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            InvoiceService.mark_paid(invoice.pk)

        assert received == [(Invoice, invoice.pk, "paid")]

    def test_approve_sends_invoice_and_request_events(self, invoice, customer, received,
                                                      django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            edit_request = EditRequestService.submit(invoice.pk, customer, [
                {"item_name": "Widget", "quantity": "3", "unit_price": "10.00"},
            ])
            EditRequestService.approve(edit_request.pk)

        assert received == [
            (EditRequest, edit_request.pk, "submitted"),
            (Invoice, invoice.pk, "items_replaced"),
            (EditRequest, edit_request.pk, "approved"),
        ]

    def test_failed_operation_sends_nothing(self, invoice, received, django_capture_on_commit_callbacks):
        InvoiceService.mark_paid(invoice.pk)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(InvalidStateError):
                InvoiceService.mark_paid(invoice.pk)

        assert callbacks == []
        assert received == []

    def test_rolled_back_approval_discards_item_event(self, invoice, customer, received, monkeypatch,
                                                      django_capture_on_commit_callbacks):
        edit_request = EditRequestService.submit(invoice.pk, customer, [
            {"item_name": "Widget", "quantity": "3", "unit_price": "10.00"},
        ])

        def lost_race(edit_request, new_status, reviewer):
            raise InvalidStateError("no longer pending", code=ErrorCode.EDIT_REQUEST_ALREADY_REVIEWED)

        monkeypatch.setattr(EditRequestService, "_transition", staticmethod(lost_race))

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(InvalidStateError):
                EditRequestService.approve(edit_request.pk)

        assert callbacks == []
        assert received == []

    def test_failing_receiver_does_not_break_others(self, invoice, received, django_capture_on_commit_callbacks):
        def broken(sender, **kwargs):
            raise RuntimeError("receiver bug")

        invoice_changed.connect(broken)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                InvoiceService.mark_paid(invoice.pk)
        finally:
            invoice_changed.disconnect(broken)

        assert received == [(Invoice, invoice.pk, "paid")]
