from decimal import Decimal

from rest_framework import serializers

from billing.models import Business, BusinessCustomer, Customer, EditRequest, Invoice, LineItem, Payment
from billing.validation.schemas import MAX_PAYMENT_TERMS_DAYS


class LineItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = LineItem
        fields = ["id", "item_name", "quantity", "unit_price", "total_price", "sort_order"]
        read_only_fields = fields


class BusinessSerializer(serializers.ModelSerializer):
    class Meta:
        model = Business
        fields = ["id", "business_name", "email", "phone_number", "gst_number", "created_at"]
        read_only_fields = fields


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ["id", "customer_name", "email", "phone_number", "created_at"]
        read_only_fields = fields


class BusinessCustomerSerializer(serializers.ModelSerializer):
    customer_id = serializers.IntegerField(source="customer.id", read_only=True)
    customer_name = serializers.CharField(source="customer.customer_name", read_only=True)
    phone_number = serializers.CharField(source="customer.phone_number", read_only=True)
    email = serializers.CharField(source="customer.email", read_only=True)
    address = serializers.CharField(source="customer.address", read_only=True)

    class Meta:
        model = BusinessCustomer
        fields = [
            "id",
            "customer_id",
            "customer_name",
            "phone_number",
            "email",
            "address",
            "payment_terms_days",
            "credit_limit",
            "created_at",
        ]
        read_only_fields = fields


class InvoiceListSerializer(serializers.ModelSerializer):
    business_name = serializers.CharField(source="business.business_name", read_only=True)
    customer_name = serializers.CharField(source="customer.customer_name", read_only=True)
    amount_due = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "invoice_number",
            "business",
            "business_name",
            "customer",
            "customer_name",
            "invoice_date",
            "due_date",
            "status",
            "total_amount",
            "paid_amount",
            "amount_due",
            "version",
            "created_at",
        ]
        read_only_fields = fields


class InvoiceDetailSerializer(InvoiceListSerializer):
    items = LineItemSerializer(many=True, read_only=True)

    class Meta(InvoiceListSerializer.Meta):
        fields = InvoiceListSerializer.Meta.fields + ["paid_at", "items", "updated_at"]
        read_only_fields = fields


class EditRequestSerializer(serializers.ModelSerializer):
    invoice_number = serializers.CharField(source="invoice.invoice_number", read_only=True)
    customer_name = serializers.CharField(source="requested_by.customer_name", read_only=True)
    original_total = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    requested_total = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)

    class Meta:
        model = EditRequest
        fields = [
            "id",
            "invoice",
            "invoice_number",
            "requested_by",
            "customer_name",
            "original_items",
            "requested_items",
            "original_total",
            "requested_total",
            "invoice_version",
            "status",
            "created_at",
            "reviewed_at",
        ]
        read_only_fields = fields


# Input serializers only shape the request; line items and customer rules are
# validated by the service layer so every entry point reports the same errors.

class AddCustomerSerializer(serializers.Serializer):
    customer_name = serializers.CharField(required=False, allow_blank=True, default="")
    phone_number = serializers.CharField(required=False, allow_blank=True, default="")
    email = serializers.CharField(required=False, allow_blank=True, default="")
    address = serializers.CharField(required=False, allow_blank=True, default="")
    credit_limit = serializers.DecimalField(max_digits=15, decimal_places=2, required=False, default=Decimal("0.00"))
    payment_terms_days = serializers.IntegerField(required=False, allow_null=True, default=None,
                                                  min_value=1, max_value=MAX_PAYMENT_TERMS_DAYS)


class InvoiceCreateSerializer(serializers.Serializer):
    customer = serializers.IntegerField()
    invoice_date = serializers.DateField(required=False, allow_null=True, default=None)
    items = serializers.ListField(child=serializers.DictField(), allow_empty=True, default=list)


class MarkPaidSerializer(serializers.Serializer):
    amount = serializers.CharField(required=False, allow_null=True, default=None)
    payment_method = serializers.ChoiceField(choices=Payment.Method.choices, default=Payment.Method.MANUAL)


class EditRequestCreateSerializer(serializers.Serializer):
    invoice = serializers.IntegerField()
    requested_items = serializers.ListField(child=serializers.DictField(), allow_empty=True, default=list)


class RegisterBusinessSerializer(serializers.Serializer):
    business_name = serializers.CharField(required=False, allow_blank=True, default="")
    email = serializers.CharField(required=False, allow_blank=True, default="")
    phone_number = serializers.CharField(required=False, allow_blank=True, default="")
    gst_number = serializers.CharField(required=False, allow_blank=True, default="", max_length=20)


class RegisterCustomerSerializer(serializers.Serializer):
    customer_name = serializers.CharField(required=False, allow_blank=True, default="")
    phone_number = serializers.CharField(required=False, allow_blank=True, default="")
    email = serializers.CharField(required=False, allow_blank=True, default="")
