from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"

    def ready(self) -> None:
        from core.cache import Entity, track_model

        from .models import DepositHold, Payment

        track_model(DepositHold, Entity.BOOKING, lambda hold: hold.booking_id)
        track_model(Payment, Entity.BOOKING, lambda payment: payment.booking_id)
