from django.urls import path

from .operator_api import OperatorPointsAdjustView, OperatorPointsLedgerView

urlpatterns = [
    path(
        "users/<int:user_id>/ledger/",
        OperatorPointsLedgerView.as_view(),
        name="operator_points_ledger",
    ),
    path(
        "users/<int:user_id>/adjust/",
        OperatorPointsAdjustView.as_view(),
        name="operator_points_adjust",
    ),
]
