from django.contrib import admin

from .models import (
    Business, BusinessCustomer, Customer, EditRequest,
    Invoice, InvoiceActivity, LineItem, Payment, UserRole,
)


class LineItemInline(admin.TabularInline):
    model = LineItem
    extra = 0
    readonly_fields = ('item_name', 'quantity', 'unit_price', 'total_price', 'sort_order')
    can_delete = False


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ('user', 'role', 'created_at')
    list_filter = ('role',)


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    list_display = ('business_name', 'email', 'phone_number', 'created_at')
    search_fields = ('business_name', 'email')


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ('customer_name', 'phone_number', 'email', 'user')
    search_fields = ('customer_name', 'phone_number', 'email')


@admin.register(BusinessCustomer)
class BusinessCustomerAdmin(admin.ModelAdmin):
    list_display = ('business', 'customer', 'payment_terms_days', 'credit_limit')
    list_filter = ('business',)


# Ledger records are changed only through the service layer.
@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'business', 'customer', 'status', 'total_amount', 'due_date')
    list_filter = ('status', 'business')
    search_fields = ('invoice_number', 'customer__customer_name')
    readonly_fields = ('total_amount', 'paid_amount', 'paid_at', 'status', 'version')
    inlines = [LineItemInline]


@admin.register(EditRequest)
class EditRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'invoice', 'requested_by', 'status', 'created_at', 'reviewed_at')
    list_filter = ('status',)
    readonly_fields = ('original_items', 'requested_items', 'invoice_version', 'status', 'reviewed_by', 'reviewed_at')


@admin.register(InvoiceActivity)
class InvoiceActivityAdmin(admin.ModelAdmin):
    list_display = ('invoice', 'action', 'user', 'timestamp')


admin.site.register(Payment)
