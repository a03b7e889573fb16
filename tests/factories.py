from decimal import Decimal

import factory
from django.contrib.auth import get_user_model

from billing.models import Business, BusinessCustomer, Customer, LineItem, UserRole


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = get_user_model()
        django_get_or_create = ("username",)

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")


class BusinessFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Business
        skip_postgeneration_save = True

    user = factory.SubFactory(UserFactory)
    business_name = factory.Sequence(lambda n: f"Business {n}")
    email = factory.LazyAttribute(lambda o: f"{o.business_name.lower().replace(' ', '')}@example.com")
    phone_number = factory.Sequence(lambda n: f"+9180000{n:05d}")

    @factory.post_generation
    def role(obj, create, extracted, **kwargs):
        if create and obj.user_id:
            UserRole.objects.get_or_create(user=obj.user, defaults={"role": UserRole.Role.BUSINESS})


class CustomerFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Customer
        skip_postgeneration_save = True

    user = factory.SubFactory(UserFactory)
    customer_name = factory.Sequence(lambda n: f"Customer {n}")
    phone_number = factory.Sequence(lambda n: f"+9190000{n:05d}")
    email = factory.LazyAttribute(lambda o: f"customer{o.phone_number[-5:]}@example.com")

    @factory.post_generation
    def role(obj, create, extracted, **kwargs):
        if create and obj.user_id:
            UserRole.objects.get_or_create(user=obj.user, defaults={"role": UserRole.Role.CUSTOMER})


class BusinessCustomerFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = BusinessCustomer

    business = factory.SubFactory(BusinessFactory)
    customer = factory.SubFactory(CustomerFactory)
    payment_terms_days = 30
    credit_limit = Decimal("0.00")


class LineItemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = LineItem

    item_name = factory.Sequence(lambda n: f"Item {n}")
    quantity = Decimal("1.00")
    unit_price = Decimal("10.00")
    sort_order = 0
