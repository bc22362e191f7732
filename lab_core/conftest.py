# lab_core/conftest.py
import uuid

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from lab_core.audit.stores import InMemoryAuditStore
from lab_core.patients.models import Patient


@pytest.fixture
def tenant_id():
    return uuid.UUID("00000000-0000-0000-0000-000000000001")


@pytest.fixture
def facility_id():
    return uuid.UUID("00000000-0000-0000-0000-000000000101")


@pytest.fixture
def other_facility_id():
    return uuid.UUID("00000000-0000-0000-0000-000000000202")


@pytest.fixture
def user(db):
    """
    Front-desk user; role resolves from the first group name.
    """
    User = get_user_model()
    user = User.objects.create_user(
        username="frontdesk",
        password="testpass",
        first_name="Asha",
        last_name="Rao",
        is_active=True,
    )
    group, _ = Group.objects.get_or_create(name="RECEPTION")
    user.groups.add(group)
    return user


@pytest.fixture
def api_client(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def patient(db, tenant_id, facility_id):
    return Patient.objects.create(
        tenant_id=tenant_id,
        facility_id=facility_id,
        uhid="PAT000001",
        first_name="Test",
        last_name="Patient",
        age=34,
        gender=Patient.Gender.FEMALE,
        contact="9845000000",
        address_city="Mysuru",
    )


@pytest.fixture
def memory_store():
    return InMemoryAuditStore()
