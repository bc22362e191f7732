# lab_core/common/scope.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from rest_framework import status
from rest_framework.response import Response

from lab_core.common.api.exceptions import build_error_envelope


@dataclass(frozen=True)
class Scope:
    tenant_id: UUID
    facility_id: UUID


# Preferred header names (what we standardize on)
HDR_TENANT = "X-Tenant-Id"
HDR_FACILITY = "X-Facility-Id"

# Legacy variants (kept for compatibility)
HDR_TENANT_LEGACY = "X-Tenant-ID"
HDR_FACILITY_LEGACY = "X-Facility-ID"

MISSING_SCOPE_MSG = "Missing scope headers. Provide X-Tenant-Id and X-Facility-Id."
INVALID_SCOPE_MSG = "Invalid scope headers. Provide valid UUIDs for X-Tenant-Id and X-Facility-Id."


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _get_header(request, name: str) -> Optional[str]:
    """
    request.headers is case-insensitive; fallback to META for pytest/client.
    """
    headers = getattr(request, "headers", None)
    if headers is not None:
        v = headers.get(name)
        if v:
            return v

    meta_key = "HTTP_" + name.upper().replace("-", "_")
    return request.META.get(meta_key)


def _scope_error(request, message: str) -> Response:
    return Response(
        build_error_envelope(request=request, code="validation_error", message=message),
        status=status.HTTP_400_BAD_REQUEST,
    )


def require_scope_or_400(request) -> tuple[UUID | None, UUID | None, Response | None]:
    """
    Returns (tenant_id, facility_id, error_response).

    - If missing -> 400 with MISSING_SCOPE_MSG
    - If invalid -> 400 with INVALID_SCOPE_MSG
    - If ok -> (tenant_id, facility_id, None)
    """
    tenant_raw = _get_header(request, HDR_TENANT) or _get_header(request, HDR_TENANT_LEGACY)
    facility_raw = _get_header(request, HDR_FACILITY) or _get_header(request, HDR_FACILITY_LEGACY)

    if not tenant_raw or not facility_raw:
        return None, None, _scope_error(request, MISSING_SCOPE_MSG)

    tenant_id = _parse_uuid(tenant_raw)
    facility_id = _parse_uuid(facility_raw)
    if not tenant_id or not facility_id:
        return None, None, _scope_error(request, INVALID_SCOPE_MSG)

    # Attach for downstream consistency
    request.tenant_id = tenant_id
    request.facility_id = facility_id
    request.scope = Scope(tenant_id=tenant_id, facility_id=facility_id)

    return tenant_id, facility_id, None
