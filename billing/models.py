from __future__ import annotations

from decimal import Decimal
from typing import List

from django.conf import settings
from django.db import models
from django.utils import timezone

from .validation.schemas import line_total, to_decimal


def default_payment_terms() -> int:
    return settings.BILLING_DEFAULT_PAYMENT_TERMS_DAYS


class UserRole(models.Model):
    class Role(models.TextChoices):
        BUSINESS = "business", "Business"
        CUSTOMER = "customer", "Customer"

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="billing_role")
    role = models.CharField(max_length=20, choices=Role.choices)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.user} ({self.role})"


class Business(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="business_profile")
    business_name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    phone_number = models.CharField(max_length=20, blank=True)
    gst_number = models.CharField(max_length=20, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "Businesses"

    def __str__(self):
        return self.business_name


class Customer(models.Model):
    # Null until the customer signs up; a business may register them first.
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="customer_profile")
    customer_name = models.CharField(max_length=255)
    phone_number = models.CharField(max_length=20, unique=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.customer_name} ({self.phone_number})"


class BusinessCustomer(models.Model):
    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="customer_links")
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name="business_links")
    payment_terms_days = models.PositiveIntegerField(default=default_payment_terms)
    credit_limit = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('business', 'customer')
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.business} -> {self.customer} ({self.payment_terms_days} days)"


class Invoice(models.Model):
    class Status(models.TextChoices):
        SENT = "sent", "Sent"
        PAID = "paid", "Paid"
        OVERDUE = "overdue", "Overdue"

    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="invoices")
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name="invoices")
    invoice_number = models.CharField(max_length=50, db_index=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.SENT, db_index=True)

    invoice_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField()
    paid_at = models.DateTimeField(null=True, blank=True)

    # Derived from the line items by the ledger; never edited directly.
    total_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    paid_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))

    version = models.IntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('business', 'invoice_number')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['business', 'status'], name='billing_inv_busines_7d0c8e_idx'),
            models.Index(fields=['customer', 'status'], name='billing_inv_custome_3f1a2b_idx'),
            models.Index(fields=['status', 'due_date'], name='billing_inv_status_9e4d61_idx'),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.customer.customer_name}"

    @property
    def amount_due(self) -> Decimal:
        return max(self.total_amount - self.paid_amount, Decimal('0.00'))

    @property
    def is_paid(self) -> bool:
        return self.status == self.Status.PAID

    @property
    def can_edit(self) -> bool:
        return self.status != self.Status.PAID

    @property
    def is_past_due(self) -> bool:
        if self.is_paid:
            return False
        return self.due_date < timezone.localdate()


class LineItem(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="items")
    item_name = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('1.00'))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_price = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    sort_order = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['sort_order', 'id']
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gte=0), name="lineitem_quantity_non_negative"),
            models.CheckConstraint(condition=models.Q(unit_price__gte=0), name="lineitem_unit_price_non_negative"),
        ]

    def __str__(self):
        return f"{self.item_name} x {self.quantity}"

    def save(self, *args, **kwargs):
        self.total_price = line_total(to_decimal(self.quantity), to_decimal(self.unit_price))
        super().save(*args, **kwargs)


class Payment(models.Model):
    class Method(models.TextChoices):
        MANUAL = "manual", "Manual"
        CASH = "cash", "Cash"
        BANK_TRANSFER = "bank_transfer", "Bank Transfer"
        UPI = "upi", "UPI"
        CARD = "card", "Card"
        OTHER = "other", "Other"

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    payment_date = models.DateField(default=timezone.localdate)
    payment_method = models.CharField(max_length=20, choices=Method.choices, default=Method.MANUAL)
    recorded_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-payment_date', '-id']

    def __str__(self):
        return f"Payment {self.id} for Invoice {self.invoice.invoice_number}"


class EditRequest(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="edit_requests")
    requested_by = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name="edit_requests")
    # Copies taken at submission time, never live references to LineItem rows.
    original_items = models.JSONField(default=list)
    requested_items = models.JSONField(default=list)
    invoice_version = models.IntegerField(default=1)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)

    reviewed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="reviewed_edit_requests")
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['invoice', 'status'], name='billing_edi_invoice_5b2c90_idx'),
            models.Index(fields=['requested_by', 'status'], name='billing_edi_request_a84f17_idx'),
        ]

    def __str__(self):
        return f"Edit request {self.id} on {self.invoice.invoice_number} ({self.status})"

    @property
    def is_pending(self) -> bool:
        return self.status == self.Status.PENDING

    @property
    def original_total(self) -> Decimal:
        return _snapshot_total(self.original_items)

    @property
    def requested_total(self) -> Decimal:
        return _snapshot_total(self.requested_items)


def _snapshot_total(items: List[dict]) -> Decimal:
    return sum((to_decimal(item["total_price"]) for item in items), Decimal('0.00'))


class InvoiceActivity(models.Model):
    class ActionType(models.TextChoices):
        CREATED = "created", "Invoice Created"
        ITEMS_REPLACED = "items_replaced", "Line Items Replaced"
        PAID = "paid", "Marked Paid"
        OVERDUE = "overdue", "Marked Overdue"
        EDIT_REQUESTED = "edit_requested", "Edit Requested"
        EDIT_APPROVED = "edit_approved", "Edit Approved"
        EDIT_REJECTED = "edit_rejected", "Edit Rejected"

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="activities")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=50, choices=ActionType.choices)
    description = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)
    is_system = models.BooleanField(default=False)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp', '-id']
        verbose_name_plural = "Invoice activities"
