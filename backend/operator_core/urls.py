from django.urls import include, path

from operator_core.api import OperatorAuditEventListView, OperatorMeView

urlpatterns = [
    path("me/", OperatorMeView.as_view(), name="operator_me"),
    path("audit/", OperatorAuditEventListView.as_view(), name="operator_audit_events"),
    path("", include("operator_settings.urls")),
    path("bookings/", include("bookings.operator_urls")),
    path("bookings/", include("payments.operator_urls")),
    path("bookings/", include("closeout.urls")),
    path("loyalty/", include("loyalty.operator_urls")),
    path("fleet/", include("fleet.urls")),
]
