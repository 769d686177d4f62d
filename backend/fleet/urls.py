from django.urls import path

from fleet.api import (
    DamageReportListCreateView,
    DamageReportResolveView,
    VehicleExpenseCreateView,
    VehicleUnitCostsView,
    VehicleUnitListView,
)

urlpatterns = [
    path("units/", VehicleUnitListView.as_view(), name="operator_fleet_units"),
    path(
        "units/<int:pk>/costs/",
        VehicleUnitCostsView.as_view(),
        name="operator_fleet_unit_costs",
    ),
    path(
        "units/<int:pk>/expenses/",
        VehicleExpenseCreateView.as_view(),
        name="operator_fleet_unit_expenses",
    ),
    path("damage-reports/", DamageReportListCreateView.as_view(), name="operator_damage_reports"),
    path(
        "damage-reports/<int:pk>/resolve/",
        DamageReportResolveView.as_view(),
        name="operator_damage_report_resolve",
    ),
]
