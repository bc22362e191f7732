# lab_core/patients/services.py
from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from django.db import IntegrityError, transaction

from lab_core.audit.services import AuditService
from lab_core.audit.snapshots import snapshot
from lab_core.patients.models import ADDRESS_PARTS, Patient

ENTITY_TYPE = "Patient"

UPDATABLE = {
    "uhid",
    "first_name",
    "last_name",
    "age",
    "age_in",
    "gender",
    "contact",
    "aadhaar",
    "blood_group",
    "remark",
    *ADDRESS_PARTS,
}


def _columns(data: Optional[dict]) -> dict:
    """
    Request data -> model columns; the nested address is spread into its columns.
    """
    data = dict(data or {})
    address = data.pop("address", None) or {}
    merged = {**data, **address}
    return {k: v for k, v in merged.items() if k in UPDATABLE}


def _audit(*, action: str, patient: Patient, actor: Any, before=None, after=None, endpoint: str) -> None:
    AuditService.record(
        entity_type=ENTITY_TYPE,
        entity_id=patient.id,
        action=action,
        before=before,
        after=after,
        actor=actor,
        tenant_id=patient.tenant_id,
        facility_id=patient.facility_id,
        meta={"patientId": patient.uhid, "endpoint": endpoint},
    )


class PatientService:
    @staticmethod
    @transaction.atomic
    def create_patient(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor: Any = None,
        **data,
    ) -> Patient:
        try:
            with transaction.atomic():
                patient = Patient.objects.create(
                    tenant_id=tenant_id,
                    facility_id=facility_id,
                    **_columns(data),
                )
        except IntegrityError:
            # UHID uniqueness is enforced by constraint; surface readable error.
            raise ValueError("UHID already exists for this tenant/facility.")

        _audit(
            action="CREATE",
            patient=patient,
            actor=actor,
            after=snapshot(patient.as_document()),
            endpoint="POST /patients/",
        )
        return patient

    @staticmethod
    @transaction.atomic
    def update_patient(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor: Any = None,
        patient_id: UUID,
        data: dict,
    ) -> Patient:
        patient = Patient.objects.select_for_update().get(
            id=patient_id,
            tenant_id=tenant_id,
            facility_id=facility_id,
        )
        before = snapshot(patient.as_document())

        for k, v in _columns(data).items():
            setattr(patient, k, v)

        try:
            with transaction.atomic():
                patient.save()
        except IntegrityError:
            raise ValueError("UHID already exists for this tenant/facility.")

        _audit(
            action="UPDATE",
            patient=patient,
            actor=actor,
            before=before,
            after=snapshot(patient.as_document()),
            endpoint="PATCH /patients/:id/",
        )
        return patient

    @staticmethod
    @transaction.atomic
    def delete_patient(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor: Any = None,
        patient_id: UUID,
    ) -> None:
        patient = Patient.objects.get(id=patient_id, tenant_id=tenant_id, facility_id=facility_id)
        before = snapshot(patient.as_document())
        patient.delete()

        AuditService.record(
            entity_type=ENTITY_TYPE,
            entity_id=patient_id,
            action="DELETE",
            before=before,
            actor=actor,
            tenant_id=tenant_id,
            facility_id=facility_id,
            meta={"patientId": before["patientId"], "endpoint": "DELETE /patients/:id/"},
        )
