# lab_core/audit/tests/test_end_to_end.py
import datetime as dt

import pytest
from django.utils import timezone

from lab_core.audit import services as audit_services
from lab_core.audit.renderer import ViewContext, render
from lab_core.audit.stores import InMemoryAuditStore, get_default_store

INVOICE_V1 = {
    "department": "Pathology",
    "doctorRefNo": "DR-12",
    "payment": {"totalAmount": 500, "paidAmount": 500, "dueAmount": 0, "adjustments": []},
    "tests": [{"testDefinitionId": "t1", "name": "CBC", "qty": 1, "cost": 500}],
    "updatedAt": "2024-03-09T10:00:00.000Z",
    "editHistory": [],
}
INVOICE_V2 = {
    "department": "Pathology",
    "doctorRefNo": "DR-12",
    "payment": {
        "totalAmount": 650,
        "paidAmount": 500,
        "dueAmount": 150,
        "adjustments": [{"amount": 150, "reason": "added test"}],
    },
    "tests": [
        {"testDefinitionId": "t1", "name": "CBC", "qty": 1, "cost": 500},
        {"testDefinitionId": "t2", "name": "LFT", "qty": 1, "cost": 150},
    ],
    "updatedAt": "2024-03-09T10:05:00.000Z",
    "editHistory": [{"at": "2024-03-09T10:05:00.000Z", "by": "u1"}],
}


@pytest.fixture
def memory_backed(settings):
    settings.AUDIT_STORE_USE_DB = False
    settings.AUDIT_ASYNC_DISPATCH = False
    store = get_default_store()
    assert isinstance(store, InMemoryAuditStore)
    return store


def test_invoice_edit_is_recorded_and_rendered(memory_backed):
    started = timezone.now()
    audit_services.AuditService.record(
        entity_type="PathologyInvoice",
        entity_id="inv-42",
        action="UPDATE",
        before=INVOICE_V1,
        after=INVOICE_V2,
        actor={"userId": "u1", "role": "RECEPTION", "name": "Asha"},
        meta={"invoiceNo": "INV-42"},
    )

    entry = next(e for e in memory_backed.query_recent(50) if e.entity_id == "inv-42")
    assert entry.at >= started

    # stored diff is complete; hiding is presentation only
    assert set(entry.diff) == {
        "payment.totalAmount",
        "payment.dueAmount",
        "payment.adjustments",
        "tests",
        "updatedAt",
        "editHistory",
    }

    rows = render(entry, ViewContext())
    assert [(r.label, r.change_type, r.display_before, r.display_after) for r in rows] == [
        ("Total Amount", "edit", "₹500", "₹650"),
        ("Due Amount", "edit", "₹0", "₹150"),
        ("Tests", "add", "—", "LFT"),
    ]


def test_daily_query_finds_entry_by_local_day(memory_backed):
    audit_services.AuditService.record(entity_type="Report", entity_id="rep-1", action="CREATE")

    today = timezone.localdate()
    grouped = memory_backed.query_by_day(today.isoformat(), ["Report"])
    assert "rep-1" in [e.entity_id for e in grouped["Report"]]

    tomorrow = today + dt.timedelta(days=1)
    grouped = memory_backed.query_by_day(tomorrow, ["Report"])
    assert "rep-1" not in [e.entity_id for e in grouped.get("Report", [])]


def test_recorder_is_rebuilt_when_settings_change(settings):
    settings.AUDIT_ASYNC_DISPATCH = False
    first = audit_services.get_audit_recorder()
    assert first is audit_services.get_audit_recorder()
    assert first.task is None

    settings.AUDIT_APPEND_TIMEOUT_SECONDS = 0.25
    second = audit_services.get_audit_recorder()
    assert second is not first
    assert second.timeout == 0.25


def test_id_keyed_invoice_items_read_back_as_raw_and_rendered_rows():
    store = InMemoryAuditStore()
    recorder = audit_services.AuditRecorder(store=store)

    recorder.record(
        entity_type="PathologyInvoice",
        entity_id="inv-7",
        action="UPDATE",
        before={"payment": {"totalAmount": 500}, "tests": [{"id": "t1", "qty": 1, "cost": 500}]},
        after={
            "payment": {"totalAmount": 650},
            "tests": [{"id": "t1", "qty": 1, "cost": 500}, {"id": "t2", "qty": 1, "cost": 150}],
        },
    )

    (entry,) = store.query_recent(1)
    assert entry.diff["tests"]["added"] == [{"id": "t2", "qty": 1, "cost": 150}]

    rows = [r.as_dict() for r in render(entry, ViewContext())]
    total = next(r for r in rows if r["field"] == "payment.totalAmount")
    assert {k: total[k] for k in ("field", "before", "after", "change_type")} == {
        "field": "payment.totalAmount",
        "before": 500,
        "after": 650,
        "change_type": "edit",
    }

    tests_row = next(r for r in rows if r["label"] == "Tests")
    assert tests_row["change_type"] == "add"
    # unnamed items are listed by their key
    assert tests_row["after"] == ["t2"]
    assert tests_row["display_after"] == "t2"
