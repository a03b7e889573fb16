from datetime import date
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from billing.models import Invoice


@pytest.mark.django_db
class TestMarkOverdueInvoicesCommand:
    def test_marks_past_due_invoices(self, invoice):
        out = StringIO()
        call_command("mark_overdue_invoices", "--date", "2024-04-15", stdout=out)

        invoice.refresh_from_db()
        assert invoice.status == Invoice.Status.OVERDUE
        assert "Marked 1 invoice(s) as overdue" in out.getvalue()

    def test_dry_run_changes_nothing(self, invoice):
        out = StringIO()
        call_command("mark_overdue_invoices", "--date", "2024-04-15", "--dry-run", stdout=out)

        invoice.refresh_from_db()
        assert invoice.status == Invoice.Status.SENT
        assert invoice.invoice_number in out.getvalue()

    def test_nothing_due(self, invoice):
        out = StringIO()
        call_command("mark_overdue_invoices", "--date", date(2024, 3, 2).isoformat(), "--dry-run", stdout=out)
        assert "No invoices to mark overdue" in out.getvalue()

    def test_invalid_date(self, db):
        with pytest.raises(CommandError):
            call_command("mark_overdue_invoices", "--date", "yesterday")
