"""Housing app configuration."""

from django.apps import AppConfig


class HousingConfig(AppConfig):
    """Business records the ledger posts from and cascades into."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "housing"
    verbose_name = "Housing"
