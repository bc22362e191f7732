# lab_core/audit/admin.py
from django.contrib import admin

from lab_core.audit.models import AuditEntry


@admin.register(AuditEntry)
class AuditEntryAdmin(admin.ModelAdmin):
    list_display = (
        "action",
        "entity_type",
        "entity_id",
        "tenant_id",
        "facility_id",
        "actor_name",
        "at",
    )
    list_filter = ("action", "entity_type", "tenant_id", "facility_id")
    search_fields = ("entity_type", "entity_id", "actor_name", "actor_user_id")
    ordering = ("-at",)

    # append-only: browse, never edit
    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
