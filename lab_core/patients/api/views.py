# lab_core/patients/api/views.py
from __future__ import annotations

from uuid import UUID

from django.http import Http404
from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from lab_core.common.scope import require_scope_or_400
from lab_core.patients.filters import PatientFilter
from lab_core.patients.api.serializers import (
    PatientCreateSerializer,
    PatientSerializer,
    PatientUpdateSerializer,
)
from lab_core.patients.models import Patient
from lab_core.patients.selectors import get_patient, search_patients
from lab_core.patients.services import PatientService


def _actor(request):
    return request.user if request.user and request.user.is_authenticated else None


class PatientViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated]

    # these two lines fix spectacular + path param typing
    serializer_class = PatientSerializer
    queryset = Patient.objects.none()

    def list(self, request):
        tenant_id, facility_id, err = require_scope_or_400(request)
        if err is not None:
            return err

        q = request.query_params.get("q", "").strip()
        qs = search_patients(tenant_id=tenant_id, facility_id=facility_id, q=q)

        fs = PatientFilter(request.query_params, queryset=qs)
        if not fs.is_valid():
            raise DRFValidationError(fs.errors)

        data = PatientSerializer(fs.qs[:200], many=True).data
        return Response(data, status=status.HTTP_200_OK)

    def create(self, request):
        tenant_id, facility_id, err = require_scope_or_400(request)
        if err is not None:
            return err

        ser = PatientCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            patient = PatientService.create_patient(
                tenant_id=tenant_id,
                facility_id=facility_id,
                actor=_actor(request),
                **ser.validated_data,
            )
        except ValueError as e:
            raise DRFValidationError({"detail": str(e)})

        return Response(PatientSerializer(patient).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        tenant_id, facility_id, err = require_scope_or_400(request)
        if err is not None:
            return err

        try:
            patient = get_patient(tenant_id=tenant_id, facility_id=facility_id, patient_id=UUID(str(pk)))
        except (ValueError, Patient.DoesNotExist):
            raise Http404

        return Response(PatientSerializer(patient).data, status=status.HTTP_200_OK)

    def partial_update(self, request, pk=None):
        tenant_id, facility_id, err = require_scope_or_400(request)
        if err is not None:
            return err

        ser = PatientUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            patient = PatientService.update_patient(
                tenant_id=tenant_id,
                facility_id=facility_id,
                actor=_actor(request),
                patient_id=UUID(str(pk)),
                data=ser.validated_data,
            )
        except Patient.DoesNotExist:
            raise Http404
        except ValueError as e:
            raise DRFValidationError({"detail": str(e)})

        return Response(PatientSerializer(patient).data, status=status.HTTP_200_OK)

    def destroy(self, request, pk=None):
        tenant_id, facility_id, err = require_scope_or_400(request)
        if err is not None:
            return err

        try:
            PatientService.delete_patient(
                tenant_id=tenant_id,
                facility_id=facility_id,
                actor=_actor(request),
                patient_id=UUID(str(pk)),
            )
        except (ValueError, Patient.DoesNotExist):
            raise Http404

        return Response(status=status.HTTP_204_NO_CONTENT)
