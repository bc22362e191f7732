# lab_core/patients/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Q, QuerySet

from lab_core.patients.models import Patient


def get_patient(*, tenant_id: UUID, facility_id: UUID, patient_id: UUID) -> Patient:
    return Patient.objects.get(id=patient_id, tenant_id=tenant_id, facility_id=facility_id)


def search_patients(
    *,
    tenant_id: UUID,
    facility_id: UUID,
    q: str | None = None,
) -> QuerySet[Patient]:
    """
    Free-text lookup the way the front desk searches: UHID, either name,
    phone or Aadhaar. "Ravi Kumar" matches first + last name together.
    """
    qs = Patient.objects.filter(tenant_id=tenant_id, facility_id=facility_id)

    qv = (q or "").strip()
    if not qv:
        return qs.order_by("-created_at")

    match = (
        Q(uhid__iexact=qv)
        | Q(first_name__icontains=qv)
        | Q(last_name__icontains=qv)
        | Q(contact__icontains=qv)
        | Q(aadhaar__icontains=qv.replace(" ", ""))
    )

    first, _, rest = qv.partition(" ")
    if rest.strip():
        match |= Q(first_name__icontains=first, last_name__icontains=rest.strip())

    return qs.filter(match).order_by("-created_at")
