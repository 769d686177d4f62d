from django.apps import AppConfig


class LoyaltyConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "loyalty"

    def ready(self) -> None:
        from django.contrib.auth import get_user_model

        from core.cache import Entity, track_model

        from .models import PointsLedgerEntry

        track_model(PointsLedgerEntry, Entity.POINTS_ACCOUNT, lambda entry: entry.user_id)
        track_model(get_user_model(), Entity.POINTS_ACCOUNT, lambda user: user.id)
