# lab_core/patients/models.py
from django.db import models
from lab_core.common.models import ScopedModel

# column -> key inside the "address" sub-document
ADDRESS_PARTS = {
    "address_street": "street",
    "address_city": "city",
    "address_post": "post",
    "address_state": "state",
    "address_zip_code": "zipCode",
}


class Patient(ScopedModel):
    """
    Registered patient, scoped to tenant+facility.

    as_document() is the shape written to the audit trail on every
    create/update/delete (see PatientService).
    """

    class Gender(models.TextChoices):
        MALE = "Male", "Male"
        FEMALE = "Female", "Female"
        OTHER = "Other", "Other"

    class AgeUnit(models.TextChoices):
        YEARS = "Years", "Years"
        MONTHS = "Months", "Months"
        DAYS = "Days", "Days"

    # facility-issued patient id (UHID)
    uhid = models.CharField(max_length=32)

    first_name = models.CharField(max_length=120)
    last_name = models.CharField(max_length=120, blank=True)
    age = models.PositiveSmallIntegerField()
    age_in = models.CharField(max_length=8, choices=AgeUnit.choices, default=AgeUnit.YEARS)
    gender = models.CharField(max_length=8, choices=Gender.choices)
    contact = models.CharField(max_length=32, blank=True)
    aadhaar = models.CharField(max_length=14, blank=True)

    address_street = models.CharField(max_length=255, blank=True)
    address_city = models.CharField(max_length=120, blank=True)
    address_post = models.CharField(max_length=120, blank=True)
    address_state = models.CharField(max_length=120, blank=True)
    address_zip_code = models.CharField(max_length=12, blank=True)

    blood_group = models.CharField(max_length=3, blank=True)
    remark = models.TextField(blank=True)

    class Meta:
        db_table = "patients_patient"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "facility_id", "uhid"],
                name="uq_patient_scope_uhid",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "first_name"]),
            models.Index(fields=["tenant_id", "facility_id", "contact"]),
        ]

    def __str__(self) -> str:
        return f"{self.full_name} ({self.uhid})"

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def as_document(self) -> dict:
        return {
            "patientId": self.uhid,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "age": self.age,
            "ageIn": self.age_in,
            "gender": self.gender,
            "contact": self.contact,
            "aadhaar": self.aadhaar,
            "address": {key: getattr(self, column) for column, key in ADDRESS_PARTS.items()},
            "bloodGroup": self.blood_group,
            "remark": self.remark,
        }
