from django.urls import path

from .api import (
    OperatorBookingPaymentsView,
    OperatorDepositAuthorizeView,
    OperatorDepositCaptureView,
    OperatorDepositLedgerView,
    OperatorDepositReleaseView,
    OperatorDepositRestartView,
    OperatorDepositSyncView,
    OperatorDepositView,
    OperatorPaymentRefundView,
)

urlpatterns = [
    path("<int:pk>/deposit/", OperatorDepositView.as_view(), name="operator_deposit"),
    path(
        "<int:pk>/deposit/authorize/",
        OperatorDepositAuthorizeView.as_view(),
        name="operator_deposit_authorize",
    ),
    path(
        "<int:pk>/deposit/capture/",
        OperatorDepositCaptureView.as_view(),
        name="operator_deposit_capture",
    ),
    path(
        "<int:pk>/deposit/release/",
        OperatorDepositReleaseView.as_view(),
        name="operator_deposit_release",
    ),
    path("<int:pk>/deposit/sync/", OperatorDepositSyncView.as_view(), name="operator_deposit_sync"),
    path(
        "<int:pk>/deposit/restart/",
        OperatorDepositRestartView.as_view(),
        name="operator_deposit_restart",
    ),
    path(
        "<int:pk>/deposit/ledger/",
        OperatorDepositLedgerView.as_view(),
        name="operator_deposit_ledger",
    ),
    path("<int:pk>/payments/", OperatorBookingPaymentsView.as_view(), name="operator_payments"),
    path(
        "<int:pk>/payments/<int:payment_id>/refund/",
        OperatorPaymentRefundView.as_view(),
        name="operator_payment_refund",
    ),
]
