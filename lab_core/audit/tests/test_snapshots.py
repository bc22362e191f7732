# lab_core/audit/tests/test_snapshots.py
import pytest

from lab_core.audit.snapshots import snapshot


def test_snapshot_of_mapping_is_deep_copy():
    src = {"payment": {"totalAmount": 500}, "tests": [{"name": "CBC"}], "secret": "x"}

    snap = snapshot(src, exclude=["secret"])
    src["payment"]["totalAmount"] = 999
    src["tests"].append({"name": "LFT"})

    assert snap == {"payment": {"totalAmount": 500}, "tests": [{"name": "CBC"}]}


def test_snapshot_of_none():
    assert snapshot(None) == {}


@pytest.mark.django_db
def test_snapshot_of_model_instance(patient):
    snap = snapshot(patient, exclude=["created_at"])

    assert snap["id"] == patient.id
    assert snap["first_name"] == "Test"
    assert snap["uhid"] == "PAT000001"
    assert snap["tenant_id"] == patient.tenant_id
    assert "created_at" not in snap
    assert "updated_at" in snap


@pytest.mark.django_db
def test_snapshot_of_patient_document_nests_address(patient):
    snap = snapshot(patient.as_document())

    assert snap["firstName"] == "Test"
    assert snap["address"]["city"] == "Mysuru"
    assert "address_city" not in snap
