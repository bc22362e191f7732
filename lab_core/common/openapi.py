# lab_core/common/openapi.py
from __future__ import annotations

from drf_spectacular.openapi import AutoSchema
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter

from lab_core.common.scope import HDR_FACILITY, HDR_TENANT


class ScopedAutoSchema(AutoSchema):
    """
    Documents the tenant/facility scope headers on every scoped endpoint.
    Token endpoints and the schema views themselves are unscoped.
    """

    SCOPE_HEADERS = [
        OpenApiParameter(
            name=HDR_TENANT,
            type=OpenApiTypes.UUID,
            location=OpenApiParameter.HEADER,
            required=True,
            description="Tenant scope UUID.",
        ),
        OpenApiParameter(
            name=HDR_FACILITY,
            type=OpenApiTypes.UUID,
            location=OpenApiParameter.HEADER,
            required=True,
            description="Facility scope UUID.",
        ),
    ]

    def _is_unscoped_endpoint(self) -> bool:
        view = getattr(self, "view", None)
        if view is None:
            return False

        module = view.__class__.__module__ or ""
        return module.startswith(("drf_spectacular.", "rest_framework_simplejwt."))

    def get_override_parameters(self):
        params = list(super().get_override_parameters() or [])

        if not self._is_unscoped_endpoint():
            existing = {p.name.lower() for p in params}
            for p in self.SCOPE_HEADERS:
                if p.name.lower() not in existing:
                    params.append(p)

        return params
