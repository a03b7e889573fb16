from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView

from billing import health

urlpatterns = [
    path("admin/", admin.site.urls),
    path("health/", health.health_check, name="health_check"),
    path("health/live/", health.liveness_check, name="liveness_check"),
    path("api/schema/", SpectacularAPIView.as_view(), name="api_schema"),
    path("api/v1/", include("billing.api.urls")),
]
