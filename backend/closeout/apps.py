from django.apps import AppConfig


class CloseoutConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "closeout"
