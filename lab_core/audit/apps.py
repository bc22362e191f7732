# lab_core/audit/apps.py
from django.apps import AppConfig


class AuditConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "lab_core.audit"
    label = "audit"

    def ready(self):
        # built-in entity profiles and the settings receiver register on import
        from lab_core.audit import registry, services  # noqa: F401
