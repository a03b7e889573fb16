"""
Permission classes for API access control.
Role-based: a user is either a business or a customer.
"""
from rest_framework import permissions

from billing.identity import get_role
from billing.models import UserRole


class HasBillingRole(permissions.BasePermission):
    """Permission: User must be authenticated and have a billing role."""

    role = None
    message = "Your account does not have access to this resource."

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        role = get_role(request.user)
        if self.role is None:
            return role is not None
        return role == self.role


class IsBusinessUser(HasBillingRole):
    """Permission: Only business accounts (add customers, invoice, review edits)."""

    role = UserRole.Role.BUSINESS
    message = "This action is only available to business accounts."


class IsCustomerUser(HasBillingRole):
    """Permission: Only customer accounts (propose line item changes)."""

    role = UserRole.Role.CUSTOMER
    message = "This action is only available to customer accounts."
