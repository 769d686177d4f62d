from django.urls import path

from bookings.operator_api import (
    OperatorBookingDetailView,
    OperatorBookingListView,
    OperatorBookingModifyPreviewView,
    OperatorBookingModifyView,
    OperatorBookingTransitionView,
)

urlpatterns = [
    path("", OperatorBookingListView.as_view(), name="operator_bookings_list"),
    path("<int:pk>/", OperatorBookingDetailView.as_view(), name="operator_booking_detail"),
    path(
        "<int:pk>/transition/",
        OperatorBookingTransitionView.as_view(),
        name="operator_booking_transition",
    ),
    path(
        "<int:pk>/modify/preview/",
        OperatorBookingModifyPreviewView.as_view(),
        name="operator_booking_modify_preview",
    ),
    path("<int:pk>/modify/", OperatorBookingModifyView.as_view(), name="operator_booking_modify"),
]
