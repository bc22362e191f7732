# lab_core/patients/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from lab_core.patients.models import Patient


class PatientAddressSerializer(serializers.Serializer):
    """
    Nested "address" object; validated data comes back keyed by model column.
    """
    street = serializers.CharField(source="address_street", max_length=255, required=False, allow_blank=True)
    city = serializers.CharField(source="address_city", max_length=120, required=False, allow_blank=True)
    post = serializers.CharField(source="address_post", max_length=120, required=False, allow_blank=True)
    state = serializers.CharField(source="address_state", max_length=120, required=False, allow_blank=True)
    zip_code = serializers.CharField(source="address_zip_code", max_length=12, required=False, allow_blank=True)


def _aadhaar(value: str) -> str:
    digits = value.replace(" ", "")
    if digits and (not digits.isdigit() or len(digits) != 12):
        raise serializers.ValidationError("Aadhaar must be 12 digits.")
    return digits


class PatientCreateSerializer(serializers.Serializer):
    uhid = serializers.CharField(max_length=32)
    first_name = serializers.CharField(max_length=120)
    last_name = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    age = serializers.IntegerField(min_value=0, max_value=150)
    age_in = serializers.ChoiceField(choices=Patient.AgeUnit.choices, default=Patient.AgeUnit.YEARS)
    gender = serializers.ChoiceField(choices=Patient.Gender.choices)
    contact = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    aadhaar = serializers.CharField(max_length=14, required=False, allow_blank=True, default="")
    address = PatientAddressSerializer(required=False)
    blood_group = serializers.CharField(max_length=3, required=False, allow_blank=True, default="")
    remark = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_aadhaar(self, value):
        return _aadhaar(value)


class PatientUpdateSerializer(serializers.Serializer):
    """
    Partial update contract (PATCH). "address" may carry only the parts that change.
    """
    uhid = serializers.CharField(max_length=32, required=False)
    first_name = serializers.CharField(max_length=120, required=False)
    last_name = serializers.CharField(max_length=120, required=False, allow_blank=True)
    age = serializers.IntegerField(min_value=0, max_value=150, required=False)
    age_in = serializers.ChoiceField(choices=Patient.AgeUnit.choices, required=False)
    gender = serializers.ChoiceField(choices=Patient.Gender.choices, required=False)
    contact = serializers.CharField(max_length=32, required=False, allow_blank=True)
    aadhaar = serializers.CharField(max_length=14, required=False, allow_blank=True)
    address = PatientAddressSerializer(required=False)
    blood_group = serializers.CharField(max_length=3, required=False, allow_blank=True)
    remark = serializers.CharField(required=False, allow_blank=True)

    def validate_aadhaar(self, value):
        return _aadhaar(value)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("At least one field is required.")
        return attrs


class PatientSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)
    address = PatientAddressSerializer(source="*", read_only=True)

    class Meta:
        model = Patient
        fields = [
            "id",
            "tenant_id",
            "facility_id",
            "uhid",
            "first_name",
            "last_name",
            "full_name",
            "age",
            "age_in",
            "gender",
            "contact",
            "aadhaar",
            "address",
            "blood_group",
            "remark",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
