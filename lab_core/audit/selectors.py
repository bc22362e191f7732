# lab_core/audit/selectors.py
from __future__ import annotations

from datetime import datetime
from typing import Iterable
from uuid import UUID

from django.db.models import QuerySet

from lab_core.audit.models import AuditEntry


def audit_entries_qs(
    *,
    tenant_id: UUID | None = None,
    facility_id: UUID | None = None,
    entity_types: Iterable[str] | None = None,
) -> QuerySet[AuditEntry]:
    qs = AuditEntry.objects.all()

    if tenant_id:
        qs = qs.filter(tenant_id=tenant_id)
    if facility_id:
        qs = qs.filter(facility_id=facility_id)

    if isinstance(entity_types, str):
        entity_types = (entity_types,)
    types = [t for t in (entity_types or []) if t]
    if types:
        qs = qs.filter(entity_type__in=types)

    return qs


def audit_entries_between(
    *,
    start: datetime,
    end: datetime,
    tenant_id: UUID | None = None,
    facility_id: UUID | None = None,
    entity_types: Iterable[str] | None = None,
) -> QuerySet[AuditEntry]:
    """
    Half-open window [start, end), newest first.
    """
    qs = audit_entries_qs(tenant_id=tenant_id, facility_id=facility_id, entity_types=entity_types)
    return qs.filter(at__gte=start, at__lt=end).order_by("-at")


def recent_audit_entries(
    *,
    tenant_id: UUID | None = None,
    facility_id: UUID | None = None,
    entity_types: Iterable[str] | None = None,
) -> QuerySet[AuditEntry]:
    qs = audit_entries_qs(tenant_id=tenant_id, facility_id=facility_id, entity_types=entity_types)
    return qs.order_by("-at")
