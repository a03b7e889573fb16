from typing import Any, Dict, Optional, cast

from django.core.cache import cache
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import permissions, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.request import Request
from rest_framework.response import Response

from billing.identity import business_for, customer_for, get_role
from billing.models import BusinessCustomer, EditRequest, Invoice, UserRole
from billing.services import AccountService, CustomerService, EditRequestService, InvoiceService
from billing.signals import dashboard_cache_key
from billing.validation import ErrorCode, FieldError, ValidationError

from .permissions import HasBillingRole, IsBusinessUser, IsCustomerUser
from .response import APIResponse
from .serializers import (
    AddCustomerSerializer,
    BusinessCustomerSerializer,
    BusinessSerializer,
    CustomerSerializer,
    EditRequestCreateSerializer,
    EditRequestSerializer,
    InvoiceCreateSerializer,
    InvoiceDetailSerializer,
    InvoiceListSerializer,
    MarkPaidSerializer,
    RegisterBusinessSerializer,
    RegisterCustomerSerializer,
)

DASHBOARD_CACHE_TIMEOUT = 60

INVOICE_ID_PARAM = OpenApiParameter(
    name="pk",
    description="Invoice ID",
    required=True,
    type=OpenApiTypes.INT,
    location=OpenApiParameter.PATH,
)

EDIT_REQUEST_ID_PARAM = OpenApiParameter(
    name="pk",
    description="Edit request ID",
    required=True,
    type=OpenApiTypes.INT,
    location=OpenApiParameter.PATH,
)

STATUS_PARAM = OpenApiParameter(name="status", description="Filter by status", required=False, type=str)


# ------------------------------
# Account ViewSet
# ------------------------------
class AccountViewSet(viewsets.GenericViewSet):
    """Signup step that gives an authenticated user their billing role."""

    queryset = UserRole.objects.none()
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        summary="Register as a business",
        description="Create the business profile for the signed-in user.",
        request=RegisterBusinessSerializer,
        responses={201: BusinessSerializer},
    )
    @action(detail=False, methods=["post"])
    def business(self, request: Request) -> Response:
        serializer = RegisterBusinessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = cast(Dict[str, Any], serializer.validated_data)

        business = AccountService.register_business(request.user, **data)
        return APIResponse.created(BusinessSerializer(business).data, message="Business registered")

    @extend_schema(
        summary="Register as a customer",
        description="Create the customer profile for the signed-in user, claiming an existing "
                    "record when a business already added this phone number.",
        request=RegisterCustomerSerializer,
        responses={201: CustomerSerializer},
    )
    @action(detail=False, methods=["post"])
    def customer(self, request: Request) -> Response:
        serializer = RegisterCustomerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = cast(Dict[str, Any], serializer.validated_data)

        customer = AccountService.register_customer(request.user, **data)
        return APIResponse.created(CustomerSerializer(customer).data, message="Customer registered")


# ------------------------------
# Customer ViewSet
# ------------------------------
@extend_schema_view(
    list=extend_schema(
        summary="List customers",
        description="Customers linked to the authenticated business, with payment terms and credit limit.",
    ),
    create=extend_schema(
        summary="Add customer",
        description="Find a customer by phone number (or register a new one) and link them to the business.",
        request=AddCustomerSerializer,
        responses={201: BusinessCustomerSerializer},
    ),
)
class CustomerViewSet(viewsets.GenericViewSet):
    queryset = BusinessCustomer.objects.none()
    serializer_class = BusinessCustomerSerializer
    permission_classes = [IsBusinessUser]

    def get_queryset(self):
        return CustomerService.customers_for(business_for(self.request.user))

    def list(self, request: Request, *args, **kwargs) -> Response:
        serializer = BusinessCustomerSerializer(self.get_queryset(), many=True)
        return APIResponse.success(data=serializer.data)

    def create(self, request: Request, *args, **kwargs) -> Response:
        serializer = AddCustomerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = cast(Dict[str, Any], serializer.validated_data)

        link = CustomerService.add_customer(business_for(request.user), **data)
        return APIResponse.created(BusinessCustomerSerializer(link).data, message="Customer added")


# ------------------------------
# Invoice ViewSet
# ------------------------------
@extend_schema_view(
    list=extend_schema(
        summary="List invoices",
        description="Businesses see invoices they issued; customers see invoices addressed to them.",
        parameters=[STATUS_PARAM],
    ),
    retrieve=extend_schema(
        summary="Get invoice details",
        description="Retrieve an invoice including its line items.",
        parameters=[INVOICE_ID_PARAM],
    ),
    create=extend_schema(
        summary="Create invoice",
        description="Issue an invoice to a linked customer. Due date follows the customer's payment terms.",
        request=InvoiceCreateSerializer,
        responses={201: InvoiceDetailSerializer},
    ),
)
class InvoiceViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Invoice.objects.none()
    serializer_class = InvoiceDetailSerializer
    lookup_field = "pk"

    def get_permissions(self):
        if self.action in ("create", "mark_paid"):
            return [IsBusinessUser()]
        return [HasBillingRole()]

    def get_serializer_class(self):
        if self.action == "list":
            return InvoiceListSerializer
        return InvoiceDetailSerializer

    def get_queryset(self):
        status = self.request.query_params.get("status") or None
        if get_role(self.request.user) == UserRole.Role.BUSINESS:
            return InvoiceService.invoices_for_business(business_for(self.request.user), status)
        return InvoiceService.invoices_for_customer(customer_for(self.request.user), status)

    def list(self, request: Request, *args, **kwargs) -> Response:
        serializer = self.get_serializer(self.get_queryset(), many=True)
        return APIResponse.success(data=serializer.data)

    def retrieve(self, request: Request, *args, **kwargs) -> Response:
        return APIResponse.success(data=self.get_serializer(self.get_object()).data)

    def create(self, request: Request, *args, **kwargs) -> Response:
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = cast(Dict[str, Any], serializer.validated_data)

        business = business_for(request.user)
        link = BusinessCustomer.objects.filter(
            business=business, customer_id=data["customer"]
        ).select_related("customer").first()
        if link is None:
            raise ValidationError(
                message="Customer is not linked to your business.",
                fields=[FieldError(
                    field="customer",
                    code=ErrorCode.FIELD_INVALID.value,
                    message="Add this customer before invoicing them.",
                )],
            )

        invoice = InvoiceService.create_invoice(
            business,
            link.customer,
            invoice_date=data["invoice_date"],
            items=data["items"],
            user=request.user,
        )
        return APIResponse.created(InvoiceDetailSerializer(invoice).data, message="Invoice created")

    @extend_schema(
        summary="Mark invoice paid",
        description="Record a payment for the full amount (or the given amount) and mark the invoice paid.",
        request=MarkPaidSerializer,
        responses={200: InvoiceDetailSerializer},
        parameters=[INVOICE_ID_PARAM],
    )
    @action(detail=True, methods=["post"], url_path="mark-paid")
    def mark_paid(self, request: Request, pk: Optional[int] = None) -> Response:
        invoice = self.get_object()
        serializer = MarkPaidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = cast(Dict[str, Any], serializer.validated_data)

        invoice = InvoiceService.mark_paid(
            invoice.pk,
            amount=data["amount"],
            user=request.user,
            payment_method=data["payment_method"],
        )
        return APIResponse.success(data=InvoiceDetailSerializer(invoice).data, message="Invoice marked as paid")


# ------------------------------
# Edit Request ViewSet
# ------------------------------
@extend_schema_view(
    list=extend_schema(
        summary="List edit requests",
        description="Businesses see pending requests on their invoices (use ?status= for others); "
                    "customers see every request they submitted.",
        parameters=[STATUS_PARAM],
    ),
    retrieve=extend_schema(summary="Get edit request", parameters=[EDIT_REQUEST_ID_PARAM]),
    create=extend_schema(
        summary="Request invoice changes",
        description="Propose a replacement set of line items for one of your invoices.",
        request=EditRequestCreateSerializer,
        responses={201: EditRequestSerializer},
    ),
)
class EditRequestViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = EditRequest.objects.none()
    serializer_class = EditRequestSerializer
    lookup_field = "pk"

    def get_permissions(self):
        if self.action == "create":
            return [IsCustomerUser()]
        if self.action in ("approve", "reject"):
            return [IsBusinessUser()]
        return [HasBillingRole()]

    def get_queryset(self):
        if get_role(self.request.user) == UserRole.Role.BUSINESS:
            business = business_for(self.request.user)
            if self.action == "list":
                status = self.request.query_params.get("status", EditRequest.Status.PENDING)
                if status == "all":
                    status = None
                return EditRequestService.pending_for_business(business, status=status)
            return EditRequestService.pending_for_business(business, status=None)
        return EditRequestService.for_customer(customer_for(self.request.user))

    def list(self, request: Request, *args, **kwargs) -> Response:
        serializer = self.get_serializer(self.get_queryset(), many=True)
        return APIResponse.success(data=serializer.data)

    def retrieve(self, request: Request, *args, **kwargs) -> Response:
        return APIResponse.success(data=self.get_serializer(self.get_object()).data)

    def create(self, request: Request, *args, **kwargs) -> Response:
        serializer = EditRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = cast(Dict[str, Any], serializer.validated_data)

        edit_request = EditRequestService.submit(
            data["invoice"],
            customer_for(request.user),
            data["requested_items"],
        )
        return APIResponse.created(EditRequestSerializer(edit_request).data, message="Edit request submitted")

    @extend_schema(
        summary="Approve edit request",
        description="Replace the invoice's line items with the requested ones.",
        request=None,
        responses={200: EditRequestSerializer},
        parameters=[EDIT_REQUEST_ID_PARAM],
    )
    @action(detail=True, methods=["post"])
    def approve(self, request: Request, pk: Optional[int] = None) -> Response:
        edit_request = EditRequestService.approve(self.get_object().pk, reviewer=request.user)
        return APIResponse.success(data=EditRequestSerializer(edit_request).data, message="Edit request approved")

    @extend_schema(
        summary="Reject edit request",
        description="Reject the request. The invoice is left unchanged.",
        request=None,
        responses={200: EditRequestSerializer},
        parameters=[EDIT_REQUEST_ID_PARAM],
    )
    @action(detail=True, methods=["post"])
    def reject(self, request: Request, pk: Optional[int] = None) -> Response:
        edit_request = EditRequestService.reject(self.get_object().pk, reviewer=request.user)
        return APIResponse.success(data=EditRequestSerializer(edit_request).data, message="Edit request rejected")


# ------------------------------
# Dashboard
# ------------------------------
def _money(stats: Dict[str, Any]) -> Dict[str, Any]:
    return {key: str(value) if key in ("total_billed", "total_collected", "outstanding") else value
            for key, value in stats.items()}


@extend_schema(summary="Dashboard summary", description="Invoice counts and amounts for the caller's role.")
@api_view(["GET"])
@permission_classes([HasBillingRole])
def dashboard(request: Request) -> Response:
    if get_role(request.user) == UserRole.Role.BUSINESS:
        business = business_for(request.user)
        cache_key = dashboard_cache_key("business", business.pk)
        data = cache.get(cache_key)
        if data is None:
            data = _money(InvoiceService.get_stats(InvoiceService.invoices_for_business(business)))
            data["customers"] = CustomerService.customers_for(business).count()
            data["pending_edit_requests"] = EditRequestService.pending_for_business(business).count()
            cache.set(cache_key, data, DASHBOARD_CACHE_TIMEOUT)
        return APIResponse.success(data={"role": UserRole.Role.BUSINESS.value, **data})

    customer = customer_for(request.user)
    cache_key = dashboard_cache_key("customer", customer.pk)
    data = cache.get(cache_key)
    if data is None:
        data = _money(InvoiceService.get_stats(InvoiceService.invoices_for_customer(customer)))
        data["pending_edit_requests"] = EditRequestService.for_customer(customer).filter(
            status=EditRequest.Status.PENDING
        ).count()
        cache.set(cache_key, data, DASHBOARD_CACHE_TIMEOUT)
    return APIResponse.success(data={"role": UserRole.Role.CUSTOMER.value, **data})
