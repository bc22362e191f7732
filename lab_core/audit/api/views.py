# lab_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from lab_core.audit.api.serializers import AuditEntrySerializer
from lab_core.audit.models import AuditAction
from lab_core.audit.renderer import ViewContext, has_meaningful_changes, matches_text
from lab_core.audit.stores import AuditStore, get_default_store
from lab_core.common.scope import require_scope_or_400


def _entity_types(request) -> list[str]:
    raw = request.query_params.get("entity") or request.query_params.get("entities") or ""
    return [s.strip() for s in raw.split(",") if s.strip()]


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes"}


ENTITY_PARAM = OpenApiParameter(
    name="entity",
    type=OpenApiTypes.STR,
    location=OpenApiParameter.QUERY,
    required=False,
    description="Comma-separated entity types (e.g. Patient,Appointment,PathologyInvoice,Report).",
)


class AuditEntryViewSet(viewsets.GenericViewSet):
    """
    Read the audit trail (scoped). Entries are append-only; there are no write endpoints.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = AuditEntrySerializer

    def get_store(self) -> AuditStore:
        return get_default_store()

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx["view_context"] = ViewContext.from_settings()
        return ctx

    @extend_schema(
        tags=["Audit"],
        parameters=[
            OpenApiParameter(
                name="date",
                type=OpenApiTypes.DATE,
                location=OpenApiParameter.QUERY,
                required=True,
                description="Calendar day (YYYY-MM-DD) in the server's local time zone.",
            ),
            ENTITY_PARAM,
            OpenApiParameter(
                name="action",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="CREATE, UPDATE, DELETE or ALL (default).",
            ),
            OpenApiParameter(
                name="q",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Free-text filter over entity id, actor, meta tags and changed fields.",
            ),
            OpenApiParameter(
                name="meaningful",
                type=OpenApiTypes.BOOL,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Hide UPDATE entries whose changes are all noise.",
            ),
            OpenApiParameter(
                name="limit",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Max records to read (default 2000, max 5000).",
            ),
        ],
    )
    @action(detail=False, methods=["get"])
    def daily(self, request):
        tenant_id, facility_id, err = require_scope_or_400(request)
        if err is not None:
            return err

        day = (request.query_params.get("date") or "").strip()
        if not day:
            raise ValidationError({"date": "Missing date param (YYYY-MM-DD)."})

        try:
            grouped = self.get_store().query_by_day(
                day,
                _entity_types(request) or None,
                tenant_id=tenant_id,
                facility_id=facility_id,
                limit=request.query_params.get("limit"),
            )
        except ValueError as e:
            raise ValidationError({"date": str(e)})

        wanted_action = (request.query_params.get("action") or "ALL").strip().upper()
        if wanted_action != "ALL" and wanted_action not in AuditAction.values:
            raise ValidationError({"action": "Expected CREATE, UPDATE, DELETE or ALL."})

        q = request.query_params.get("q") or ""
        meaningful_only = _truthy(request.query_params.get("meaningful"))
        view_context = ViewContext.from_settings()

        def keep(entry) -> bool:
            if wanted_action != "ALL" and entry.action != wanted_action:
                return False
            if q and not matches_text(entry, q):
                return False
            if meaningful_only and not has_meaningful_changes(entry, view_context):
                return False
            return True

        filtered = {k: [e for e in rows if keep(e)] for k, rows in grouped.items()}
        filtered = {k: rows for k, rows in filtered.items() if rows}
        entries = sorted((e for rows in filtered.values() for e in rows), key=lambda e: e.at, reverse=True)

        ctx = self.get_serializer_context()
        return Response(
            {
                "date": day,
                "count": len(entries),
                "grouped": {k: AuditEntrySerializer(rows, many=True, context=ctx).data for k, rows in filtered.items()},
                "entries": AuditEntrySerializer(entries, many=True, context=ctx).data,
            },
            status=status.HTTP_200_OK,
        )

    @extend_schema(
        tags=["Audit"],
        parameters=[
            ENTITY_PARAM,
            OpenApiParameter(
                name="limit",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Max records to return (default 200, max 2000).",
            ),
        ],
    )
    @action(detail=False, methods=["get"])
    def recent(self, request):
        tenant_id, facility_id, err = require_scope_or_400(request)
        if err is not None:
            return err

        entries = self.get_store().query_recent(
            request.query_params.get("limit"),
            entity_types=_entity_types(request) or None,
            tenant_id=tenant_id,
            facility_id=facility_id,
        )
        data = AuditEntrySerializer(entries, many=True, context=self.get_serializer_context()).data
        return Response({"count": len(entries), "entries": data}, status=status.HTTP_200_OK)
