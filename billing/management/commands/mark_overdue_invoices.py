"""
Management command to move unpaid invoices past their due date to overdue.

Usage:
    python manage.py mark_overdue_invoices            # Mark invoices overdue as of today
    python manage.py mark_overdue_invoices --dry-run  # Show what would change
    python manage.py mark_overdue_invoices --date 2024-03-31
"""

import logging
from datetime import date

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from billing.models import Invoice
from billing.services import InvoiceService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Mark sent invoices whose due date has passed as overdue'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List invoices that would be marked overdue without changing them',
        )
        parser.add_argument(
            '--date',
            help='Treat this ISO date (YYYY-MM-DD) as today',
        )

    def handle(self, *args, **options):
        today = timezone.localdate()
        if options['date']:
            try:
                today = date.fromisoformat(options['date'])
            except ValueError:
                raise CommandError(f"Invalid date: {options['date']}")

        due = Invoice.objects.filter(status=Invoice.Status.SENT, due_date__lt=today).select_related('customer')

        if options['dry_run']:
            count = due.count()
            if count == 0:
                self.stdout.write(self.style.SUCCESS('No invoices to mark overdue'))
                return
            self.stdout.write(f'Found {count} invoice(s) past due')
            for invoice in due:
                self.stdout.write(f'  {invoice.invoice_number} - {invoice.customer.customer_name} (due {invoice.due_date})')
            return

        count = InvoiceService.mark_overdue(today=today)
        self.stdout.write(self.style.SUCCESS(f'Marked {count} invoice(s) as overdue'))
