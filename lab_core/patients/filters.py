# lab_core/patients/filters.py
from __future__ import annotations

import django_filters

from lab_core.patients.models import Patient


class PatientFilter(django_filters.FilterSet):
    uhid = django_filters.CharFilter(field_name="uhid", lookup_expr="iexact")
    gender = django_filters.CharFilter(field_name="gender", lookup_expr="iexact")
    city = django_filters.CharFilter(field_name="address_city", lookup_expr="icontains")
    min_age = django_filters.NumberFilter(field_name="age", lookup_expr="gte")
    max_age = django_filters.NumberFilter(field_name="age", lookup_expr="lte")

    class Meta:
        model = Patient
        fields = ["uhid", "gender", "city", "min_age", "max_age"]
