import logging
import re
from decimal import Decimal
from typing import Any, Optional

from django.conf import settings
from django.db import transaction

from ..models import Business, BusinessCustomer, Customer, UserRole
from ..validation import (
    BusinessSchema,
    CustomerSchema,
    ErrorCode,
    InvalidStateError,
    persistence_guard,
)
from ..validation.schemas import MONEY_PLACES, to_decimal

logger = logging.getLogger(__name__)

_PHONE_SEPARATORS = re.compile(r"[\s\-\(\)]")


def normalize_phone(raw: str) -> str:
    """Strip separators and add the default country code when none is given.

    >>> normalize_phone("98765 43210")
    '+919876543210'
    """
    phone = _PHONE_SEPARATORS.sub("", (raw or "").strip())
    if not phone:
        return ""
    if not phone.startswith("+"):
        phone = f"{settings.BILLING_DEFAULT_COUNTRY_CODE}{phone}"
    return phone


class AccountService:
    @classmethod
    @persistence_guard
    @transaction.atomic
    def register_business(cls, user, business_name: str, email: str = "", phone_number: str = "",
                          gst_number: str = "") -> Business:
        BusinessSchema.raise_if_invalid({
            "business_name": business_name,
            "phone_number": phone_number,
            "email": email,
            "gst_number": gst_number,
        })

        cls._assign_role(user, UserRole.Role.BUSINESS)
        if Business.objects.filter(user=user).exists():
            raise InvalidStateError(
                "This account already has a business profile",
                code=ErrorCode.RESOURCE_CONFLICT,
            )

        business = Business.objects.create(
            user=user,
            business_name=business_name.strip(),
            email=email or getattr(user, "email", ""),
            phone_number=normalize_phone(phone_number),
            gst_number=(gst_number or "").strip(),
        )
        logger.info(f"Business {business.id} registered for user {user.id}")
        return business

    @classmethod
    @persistence_guard
    @transaction.atomic
    def register_customer(cls, user, customer_name: str, phone_number: str, email: str = "") -> Customer:
        CustomerSchema.raise_if_invalid({
            "customer_name": customer_name,
            "phone_number": phone_number,
            "email": email,
        })
        phone = normalize_phone(phone_number)
        cls._assign_role(user, UserRole.Role.CUSTOMER)
        if Customer.objects.filter(user=user).exclude(phone_number=phone).exists():
            raise InvalidStateError(
                "This account already has a customer profile",
                code=ErrorCode.RESOURCE_CONFLICT,
            )

        customer = Customer.objects.select_for_update().filter(phone_number=phone).first()
        if customer is None:
            customer = Customer.objects.create(
                user=user,
                customer_name=customer_name.strip(),
                phone_number=phone,
                email=email or getattr(user, "email", ""),
            )
            logger.info(f"Customer {customer.id} registered for user {user.id}")
            return customer

        if customer.user_id is not None and customer.user_id != user.pk:
            raise InvalidStateError(
                "This phone number is already registered to another account",
                code=ErrorCode.RESOURCE_CONFLICT,
            )

        # A business registered this customer first; the signup claims the record.
        customer.user = user
        if email and not customer.email:
            customer.email = email
        customer.save(update_fields=["user", "email", "updated_at"])
        logger.info(f"Customer {customer.id} claimed by user {user.id}")
        return customer

    @staticmethod
    def _assign_role(user, role: str) -> UserRole:
        user_role, created = UserRole.objects.get_or_create(user=user, defaults={"role": role})
        if not created and user_role.role != role:
            raise InvalidStateError(
                f"This account is already registered as a {user_role.role}",
                code=ErrorCode.RESOURCE_CONFLICT,
            )
        return user_role


class CustomerService:
    @staticmethod
    def payment_terms_for(business: Business, customer: Customer) -> int:
        terms = BusinessCustomer.objects.filter(
            business=business, customer=customer
        ).values_list("payment_terms_days", flat=True).first()
        return terms or settings.BILLING_DEFAULT_PAYMENT_TERMS_DAYS

    @staticmethod
    def customers_for(business: Business):
        return BusinessCustomer.objects.filter(business=business).select_related("customer")

    @classmethod
    @persistence_guard
    @transaction.atomic
    def add_customer(cls, business: Business, phone_number: str, customer_name: str, email: str = "",
                     address: str = "", credit_limit: Any = Decimal("0.00"),
                     payment_terms_days: Optional[int] = None) -> BusinessCustomer:
        if payment_terms_days is None:
            payment_terms_days = settings.BILLING_DEFAULT_PAYMENT_TERMS_DAYS
        if credit_limit in (None, ""):
            credit_limit = Decimal("0.00")

        CustomerSchema.raise_if_invalid({
            "customer_name": customer_name,
            "phone_number": phone_number,
            "email": email,
            "address": address,
            "credit_limit": credit_limit,
            "payment_terms_days": payment_terms_days,
        })

        phone = normalize_phone(phone_number)
        customer, created = Customer.objects.get_or_create(
            phone_number=phone,
            defaults={
                "customer_name": customer_name.strip(),
                "email": (email or "").strip(),
                "address": (address or "").strip(),
            },
        )

        if BusinessCustomer.objects.filter(business=business, customer=customer).exists():
            logger.warning(f"Customer {customer.id} is already linked to business {business.id}")
            raise InvalidStateError(
                f"{customer.customer_name} is already one of your customers",
                code=ErrorCode.RESOURCE_CONFLICT,
            )

        link = BusinessCustomer.objects.create(
            business=business,
            customer=customer,
            payment_terms_days=payment_terms_days,
            credit_limit=to_decimal(credit_limit).quantize(MONEY_PLACES),
        )
        logger.info(
            f"Customer {customer.id} ({'new' if created else 'existing'}) linked to business {business.id}"
        )
        return link
