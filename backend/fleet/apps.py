from django.apps import AppConfig


class FleetConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "fleet"

    def ready(self) -> None:
        from core.cache import Entity, track_model

        from .models import DamageReport, VehicleExpense

        track_model(VehicleExpense, Entity.VEHICLE_UNIT, lambda expense: expense.unit_id)
        track_model(DamageReport, Entity.VEHICLE_UNIT, lambda report: report.unit_id)
