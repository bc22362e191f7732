# lab_core/audit/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from lab_core.audit.renderer import ViewContext, render, summarize


class ChangeItemSerializer(serializers.Serializer):
    field = serializers.CharField()
    label = serializers.CharField()
    before = serializers.JSONField(allow_null=True)
    after = serializers.JSONField(allow_null=True)
    change_type = serializers.ChoiceField(choices=["add", "remove", "edit"])
    display_before = serializers.CharField()
    display_after = serializers.CharField()


class AuditEntrySerializer(serializers.Serializer):
    """
    Read-only view of an AuditRecord plus its rendered change rows.
    """
    id = serializers.UUIDField(read_only=True)
    tenant_id = serializers.UUIDField(read_only=True, allow_null=True)
    facility_id = serializers.UUIDField(read_only=True, allow_null=True)
    entity_type = serializers.CharField(read_only=True)
    entity_id = serializers.CharField(read_only=True)
    action = serializers.CharField(read_only=True)
    actor = serializers.SerializerMethodField()
    diff = serializers.JSONField(read_only=True)
    meta = serializers.JSONField(read_only=True)
    at = serializers.DateTimeField(read_only=True)
    changes = serializers.SerializerMethodField()
    summary = serializers.SerializerMethodField()

    def _view_context(self) -> ViewContext:
        return self.context.get("view_context") or ViewContext.from_settings()

    def get_actor(self, obj) -> dict:
        return obj.actor.as_dict()

    def get_changes(self, obj) -> list[dict]:
        rows = render(obj, self._view_context())
        return ChangeItemSerializer([r.as_dict() for r in rows], many=True).data

    def get_summary(self, obj) -> str:
        return summarize(obj)
