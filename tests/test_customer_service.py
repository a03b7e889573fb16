from decimal import Decimal

import pytest

from billing.identity import business_for, customer_for, get_role
from billing.models import BusinessCustomer, Customer, UserRole
from billing.services import AccountService, CustomerService, normalize_phone
from billing.validation import ErrorCode, InvalidStateError, PermissionDeniedError, ValidationError
from tests.factories import BusinessFactory, CustomerFactory, UserFactory


class TestNormalizePhone:
    @pytest.mark.parametrize("raw, expected", [
        ("98765 43210", "+919876543210"),
        ("98765-43210", "+919876543210"),
        ("+1 (415) 555-0100", "+14155550100"),
        ("  +919876543210 ", "+919876543210"),
        ("", ""),
    ])
    def test_normalize_phone(self, raw, expected, settings):
        settings.BILLING_DEFAULT_COUNTRY_CODE = "+91"
        assert normalize_phone(raw) == expected

    def test_country_code_is_configurable(self, settings):
        settings.BILLING_DEFAULT_COUNTRY_CODE = "+44"
        assert normalize_phone("7700 900123") == "+447700900123"


@pytest.mark.django_db
class TestAddCustomer:
    def test_add_new_customer(self, business):
        link = CustomerService.add_customer(
            business, "98765 43210", "Asha Traders",
            email="asha@example.com", credit_limit="5000", payment_terms_days=45,
        )

        assert link.business == business
        assert link.customer.phone_number == "+919876543210"
        assert link.customer.customer_name == "Asha Traders"
        assert link.customer.user is None
        assert link.payment_terms_days == 45
        assert link.credit_limit == Decimal("5000.00")

    def test_terms_default_to_setting(self, business, settings):
        settings.BILLING_DEFAULT_PAYMENT_TERMS_DAYS = 30
        link = CustomerService.add_customer(business, "9876543210", "Asha Traders")
        assert link.payment_terms_days == 30
        assert CustomerService.payment_terms_for(business, link.customer) == 30

    def test_existing_customer_found_by_phone(self, business):
        existing = CustomerFactory(phone_number="+919876543210", customer_name="Asha")

        link = CustomerService.add_customer(business, "98765-43210", "Someone Else")

        assert link.customer == existing
        assert Customer.objects.count() == 1
        existing.refresh_from_db()
        assert existing.customer_name == "Asha"

    def test_duplicate_link_rejected(self, business):
        CustomerService.add_customer(business, "9876543210", "Asha Traders")

        with pytest.raises(InvalidStateError) as exc_info:
            CustomerService.add_customer(business, "+91 98765 43210", "Asha Traders")

        assert exc_info.value.code == ErrorCode.RESOURCE_CONFLICT.value
        assert BusinessCustomer.objects.count() == 1

    def test_same_customer_for_two_businesses(self, business):
        CustomerService.add_customer(business, "9876543210", "Asha Traders", payment_terms_days=15)
        other = CustomerService.add_customer(BusinessFactory(), "9876543210", "Asha Traders", payment_terms_days=60)

        assert Customer.objects.count() == 1
        assert CustomerService.payment_terms_for(business, other.customer) == 15
        assert CustomerService.payment_terms_for(other.business, other.customer) == 60

    @pytest.mark.parametrize("kwargs, field", [
        ({"customer_name": "", "phone_number": "9876543210"}, "customer_name"),
        ({"customer_name": "Asha", "phone_number": ""}, "phone_number"),
        ({"customer_name": "Asha", "phone_number": "call me"}, "phone_number"),
        ({"customer_name": "Asha", "phone_number": "9876543210", "credit_limit": "-1"}, "credit_limit"),
        ({"customer_name": "Asha", "phone_number": "9876543210", "payment_terms_days": 0}, "payment_terms_days"),
        ({"customer_name": "Asha", "phone_number": "9876543210", "payment_terms_days": 3_000_000}, "payment_terms_days"),
        ({"customer_name": "Asha", "phone_number": "9876543210", "email": "not-an-email"}, "email"),
    ])
    def test_invalid_input_rejected(self, business, kwargs, field):
        with pytest.raises(ValidationError) as exc_info:
            CustomerService.add_customer(business, **kwargs)

        assert field in {error.field for error in exc_info.value.fields}
        assert BusinessCustomer.objects.count() == 0

    def test_customers_for_business(self, business, link):
        CustomerService.add_customer(BusinessFactory(), "9876543210", "Elsewhere")
        assert list(CustomerService.customers_for(business)) == [link]


@pytest.mark.django_db
class TestAccounts:
    def test_register_business(self):
        user = UserFactory()
        business = AccountService.register_business(user, "Sharma Hardware", phone_number="98765 00000")

        assert business.user == user
        assert business.phone_number == "+919876500000"
        assert get_role(user) == UserRole.Role.BUSINESS
        assert business_for(user) == business

    def test_register_customer_claims_existing_record(self, business):
        link = CustomerService.add_customer(business, "9876543210", "Asha Traders")
        user = UserFactory()

        customer = AccountService.register_customer(user, "Asha", "98765 43210", email="asha@example.com")

        assert customer.pk == link.customer.pk
        assert customer.user == user
        assert customer.email == "asha@example.com"
        assert customer_for(user) == customer

    def test_register_customer_creates_record(self):
        user = UserFactory()
        customer = AccountService.register_customer(user, "Ravi", "9000000001")

        assert customer.phone_number == "+919000000001"
        assert get_role(user) == UserRole.Role.CUSTOMER

    def test_phone_owned_by_other_account_rejected(self):
        CustomerFactory(phone_number="+919000000001")

        with pytest.raises(InvalidStateError):
            AccountService.register_customer(UserFactory(), "Ravi", "9000000001")

    def test_role_cannot_change(self):
        user = UserFactory()
        AccountService.register_business(user, "Sharma Hardware")

        with pytest.raises(InvalidStateError):
            AccountService.register_customer(user, "Ravi", "9000000001")

        assert get_role(user) == UserRole.Role.BUSINESS
        assert not Customer.objects.exists()

    def test_second_business_profile_rejected(self):
        user = UserFactory()
        AccountService.register_business(user, "Sharma Hardware")

        with pytest.raises(InvalidStateError) as exc_info:
            AccountService.register_business(user, "Sharma Paints")

        assert exc_info.value.code == ErrorCode.RESOURCE_CONFLICT.value
        assert business_for(user).business_name == "Sharma Hardware"

    def test_second_customer_profile_rejected(self):
        user = UserFactory()
        AccountService.register_customer(user, "Ravi", "9000000001")

        with pytest.raises(InvalidStateError):
            AccountService.register_customer(user, "Ravi", "9000000002")

        assert Customer.objects.filter(user=user).count() == 1

    def test_blank_business_name_rejected(self):
        with pytest.raises(ValidationError):
            AccountService.register_business(UserFactory(), "  ")


@pytest.mark.django_db
class TestIdentity:
    def test_customer_is_not_a_business(self, customer):
        with pytest.raises(PermissionDeniedError):
            business_for(customer.user)

    def test_business_is_not_a_customer(self, business):
        with pytest.raises(PermissionDeniedError):
            customer_for(business.user)

    def test_user_without_role(self):
        assert get_role(UserFactory()) is None
