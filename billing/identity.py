"""Who is acting: the authenticated user's role and billing profile."""

from typing import Optional

from .models import Business, Customer, UserRole
from .validation import PermissionDeniedError


def get_role(user) -> Optional[str]:
    if user is None or not user.is_authenticated:
        return None
    role = UserRole.objects.filter(user=user).values_list("role", flat=True).first()
    return role


def business_for(user) -> Business:
    if get_role(user) != UserRole.Role.BUSINESS:
        raise PermissionDeniedError("This action is only available to business accounts")
    business = Business.objects.filter(user=user).first()
    if business is None:
        raise PermissionDeniedError("No business profile is registered for this account")
    return business


def customer_for(user) -> Customer:
    if get_role(user) != UserRole.Role.CUSTOMER:
        raise PermissionDeniedError("This action is only available to customer accounts")
    customer = Customer.objects.filter(user=user).first()
    if customer is None:
        raise PermissionDeniedError("No customer profile is registered for this account")
    return customer
