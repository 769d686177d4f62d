from django.urls import path

from operator_settings.api import OperatorSettingsView

app_name = "operator_settings"

urlpatterns = [
    path("settings/", OperatorSettingsView.as_view(), name="operator_settings"),
]
