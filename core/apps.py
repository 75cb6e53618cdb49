"""Core application configuration."""

from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Configuration for the core app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "core"

    def ready(self):  # pragma: no cover - executed via Django startup
        """Apply the log retention policy once the app registry is ready."""

        from procurement_app.logging import configure_logging

        configure_logging()
