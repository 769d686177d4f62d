from django.conf import settings
from django.contrib import admin
from django.urls import include, path

from core.pricing import rate_card

urlpatterns = [
    path("api/rates/", rate_card, name="rate_card"),
    path("api/users/", include("users.urls")),
    path("api/bookings/", include(("bookings.urls", "bookings"), namespace="bookings")),
    path("api/payments/", include("payments.urls")),
    path("api/loyalty/", include("loyalty.urls")),
]

if settings.ENABLE_DJANGO_ADMIN:
    urlpatterns.insert(0, path("admin/", admin.site.urls))

if settings.ENABLE_OPERATOR:
    urlpatterns.append(path("api/operator/", include("operator_core.urls")))
