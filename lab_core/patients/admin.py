# lab_core/patients/admin.py
from django.contrib import admin

from lab_core.patients.models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = (
        "uhid",
        "first_name",
        "last_name",
        "age",
        "age_in",
        "gender",
        "contact",
        "address_city",
        "facility_id",
        "created_at",
    )
    list_filter = ("gender", "age_in", "tenant_id", "facility_id")
    search_fields = ("uhid", "first_name", "last_name", "contact", "aadhaar")
    readonly_fields = ("created_at", "updated_at")
    fieldsets = (
        (None, {"fields": ("uhid", "tenant_id", "facility_id")}),
        ("Identity", {"fields": ("first_name", "last_name", "age", "age_in", "gender", "aadhaar")}),
        ("Contact", {"fields": ("contact", "address_street", "address_city", "address_post", "address_state", "address_zip_code")}),
        ("Clinical", {"fields": ("blood_group", "remark")}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )
    ordering = ("-created_at",)
