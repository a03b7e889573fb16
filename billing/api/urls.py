"""API URL routing for BillDesk."""
from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import AccountViewSet, CustomerViewSet, EditRequestViewSet, InvoiceViewSet, dashboard

router = DefaultRouter()
router.register(r'accounts', AccountViewSet, basename='api-accounts')
router.register(r'customers', CustomerViewSet, basename='api-customers')
router.register(r'invoices', InvoiceViewSet, basename='api-invoices')
router.register(r'edit-requests', EditRequestViewSet, basename='api-edit-requests')

urlpatterns = router.urls + [
    path('dashboard/', dashboard, name='api-dashboard'),
]
