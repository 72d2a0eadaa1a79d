from django.apps import AppConfig


class AlertsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "lis_core.alerts"

    def ready(self) -> None:
        # Registers @subscribe handlers
        from lis_core.alerts import subscribers  # noqa: F401
