# lab_core/tests/test_scope_enforcement.py
import pytest

pytestmark = pytest.mark.django_db


def test_missing_scope_returns_error_envelope(api_client):
    r = api_client.get("/api/v1/patients/")

    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"
    assert "Missing scope headers" in r.data["error"]["message"]
    assert "request_id" in r.data["error"]


def test_invalid_scope_returns_error_envelope(api_client):
    r = api_client.get(
        "/api/v1/audit/entries/recent/",
        HTTP_X_TENANT_ID="not-a-uuid",
        HTTP_X_FACILITY_ID="also-not-a-uuid",
    )

    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"
    assert "Invalid scope headers" in r.data["error"]["message"]


def test_one_header_only_counts_as_missing(api_client, tenant_id):
    r = api_client.get("/api/v1/audit/entries/recent/", HTTP_X_TENANT_ID=str(tenant_id))

    assert r.status_code == 400
    assert "Missing scope headers" in r.data["error"]["message"]
