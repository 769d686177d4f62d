from django.urls import path

from .api import OperatorCloseAccountView, OperatorCloseoutPreviewView, OperatorCloseoutRetryView

urlpatterns = [
    path(
        "<int:pk>/closeout/preview/",
        OperatorCloseoutPreviewView.as_view(),
        name="operator_closeout_preview",
    ),
    path("<int:pk>/closeout/", OperatorCloseAccountView.as_view(), name="operator_closeout"),
    path(
        "<int:pk>/closeout/retry/",
        OperatorCloseoutRetryView.as_view(),
        name="operator_closeout_retry",
    ),
]
