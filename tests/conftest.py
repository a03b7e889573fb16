from datetime import date

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from billing.services import InvoiceService
from tests.factories import BusinessCustomerFactory, BusinessFactory, CustomerFactory

INVOICE_DATE = date(2024, 3, 1)
WIDGETS = [{"item_name": "Widget", "quantity": "2", "unit_price": "10.00"}]


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def business(db):
    return BusinessFactory()


@pytest.fixture
def customer(db):
    return CustomerFactory()


@pytest.fixture
def link(business, customer):
    return BusinessCustomerFactory(business=business, customer=customer, payment_terms_days=30)


@pytest.fixture
def invoice(business, customer, link):
    return InvoiceService.create_invoice(
        business, customer, invoice_date=INVOICE_DATE, items=WIDGETS, user=business.user
    )


@pytest.fixture
def business_client(business):
    client = APIClient()
    client.force_authenticate(user=business.user)
    return client


@pytest.fixture
def customer_client(customer):
    client = APIClient()
    client.force_authenticate(user=customer.user)
    return client
