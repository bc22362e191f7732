# lab_core/audit/models.py
import uuid

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class AuditAction(models.TextChoices):
    CREATE = "CREATE", "Create"
    UPDATE = "UPDATE", "Update"
    DELETE = "DELETE", "Delete"


class ImmutableAuditEntryError(RuntimeError):
    pass


class AuditEntryQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ImmutableAuditEntryError("Audit entries are append-only.")

    def delete(self):
        raise ImmutableAuditEntryError("Audit entries are append-only.")


class AuditEntry(models.Model):
    """
    Immutable change record: one row per mutating operation.
    diff holds {path: {"before", "after"}} pairs (UPDATE only) or collection markers.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.UUIDField(null=True, blank=True, db_index=True)
    facility_id = models.UUIDField(null=True, blank=True, db_index=True)

    entity_type = models.CharField(max_length=128, db_index=True)  # e.g. "Patient", "PathologyInvoice"
    entity_id = models.CharField(max_length=255, db_index=True)
    action = models.CharField(max_length=16, choices=AuditAction.choices)

    actor_user_id = models.CharField(max_length=64, blank=True)
    actor_role = models.CharField(max_length=64, blank=True)
    actor_name = models.CharField(max_length=255, blank=True)

    diff = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    meta = models.JSONField(default=dict, encoder=DjangoJSONEncoder)

    at = models.DateTimeField(db_index=True)

    objects = AuditEntryQuerySet.as_manager()

    class Meta:
        db_table = "audit_audit_entry"
        ordering = ("-at",)
        indexes = [
            models.Index(fields=["entity_type", "entity_id", "at"]),
            models.Index(fields=["tenant_id", "facility_id", "at"]),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.entity_type}:{self.entity_id} @ {self.at:%Y-%m-%d %H:%M:%S}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableAuditEntryError("Audit entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableAuditEntryError("Audit entries are append-only.")
