"""URL configuration for procurement_app project."""

from django.contrib import admin
from django.urls import include, path

from core.views import health_check

urlpatterns = [
    path("admin/", admin.site.urls),
    path("healthz", health_check, name="health-check"),
    path("api-auth/", include("rest_framework.urls")),
    path("api/", include("procurement.urls")),
]
