"""Audit app configuration."""

from django.apps import AppConfig


class AuditConfig(AppConfig):
    """Append-only deletion and audit logs."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "audit"
    verbose_name = "Audit"
