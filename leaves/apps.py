from django.apps import AppConfig


class LeavesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "leaves"
    verbose_name = "Leave management"

    def ready(self) -> None:
        # Import signals so the handlers are registered when the app starts.
        from . import signals  # noqa: F401
