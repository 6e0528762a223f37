from django.apps import AppConfig


class StandingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "standing"
    verbose_name = "Academic standing computation"
