"""
Signal handlers for BillDesk:
- Audit logging of committed invoice and edit-request changes
- Dashboard cache invalidation
"""

import logging

from django.core.cache import cache
from django.dispatch import receiver

from .events import edit_request_changed, invoice_changed

logger = logging.getLogger(__name__)


def dashboard_cache_key(role: str, profile_id: int) -> str:
    return f"billing:dashboard:{role}:{profile_id}"


def invalidate_dashboards(business_id: int, customer_id: int) -> None:
    cache.delete_many([
        dashboard_cache_key("business", business_id),
        dashboard_cache_key("customer", customer_id),
    ])


# =============================================================================
# INVOICE SIGNALS
# =============================================================================

@receiver(invoice_changed)
def log_invoice_change(sender, instance, action: str, **kwargs):
    logger.info(
        "Invoice %s (%s) %s: status=%s total=%s version=%s",
        instance.pk, instance.invoice_number, action, instance.status, instance.total_amount, instance.version,
    )


@receiver(invoice_changed)
def invalidate_cache_on_invoice_change(sender, instance, **kwargs):
    invalidate_dashboards(instance.business_id, instance.customer_id)


# =============================================================================
# EDIT REQUEST SIGNALS
# =============================================================================

@receiver(edit_request_changed)
def log_edit_request_change(sender, instance, action: str, **kwargs):
    logger.info("Edit request %s on invoice %s %s", instance.pk, instance.invoice_id, action)


@receiver(edit_request_changed)
def invalidate_cache_on_edit_request_change(sender, instance, **kwargs):
    invalidate_dashboards(instance.invoice.business_id, instance.requested_by_id)
