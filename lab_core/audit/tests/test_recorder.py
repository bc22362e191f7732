# lab_core/audit/tests/test_recorder.py
import json
import logging

import pytest
from django.contrib.auth import get_user_model

from lab_core.audit.records import Actor, AuditRecord
from lab_core.audit.services import (
    AuditRecorder,
    build_entity_diff,
    build_entry,
    monotonic_now,
    resolve_actor,
)

INVOICE_BEFORE = {
    "payment": {"totalAmount": 500, "paidAmount": 0},
    "tests": [{"testDefinitionId": "t1", "name": "CBC", "qty": 1, "cost": 500}],
}
INVOICE_AFTER = {
    "payment": {"totalAmount": 650, "paidAmount": 0},
    "tests": [
        {"testDefinitionId": "t1", "name": "CBC", "qty": 1, "cost": 500},
        {"testDefinitionId": "t2", "name": "LFT", "qty": 1, "cost": 150},
    ],
}


class FailingStore:
    def append(self, entry, *, timeout=None):
        raise ConnectionError("store unreachable")


class SlowStore:
    def append(self, entry, *, timeout=None):
        raise TimeoutError("took too long")


def _recent(store):
    return store.query_recent(10)


def test_update_records_diff(memory_store):
    AuditRecorder(store=memory_store).record(
        entity_type="PathologyInvoice",
        entity_id="inv-1",
        action="UPDATE",
        before=INVOICE_BEFORE,
        after=INVOICE_AFTER,
        actor={"userId": "u1", "role": "RECEPTION", "name": "Asha"},
        meta={"endpoint": "PUT /invoices/:id"},
    )

    (entry,) = _recent(memory_store)
    assert entry.action == "UPDATE"
    assert entry.entity_id == "inv-1"
    assert entry.diff["payment.totalAmount"] == {"before": 500, "after": 650}
    assert entry.actor == Actor(user_id="u1", role="RECEPTION", name="Asha")
    assert entry.meta["endpoint"] == "PUT /invoices/:id"
    assert entry.meta["host"]


def test_collection_field_is_stored_as_marker(memory_store):
    AuditRecorder(store=memory_store).record(
        entity_type="PathologyInvoice",
        entity_id="inv-1",
        action="UPDATE",
        before=INVOICE_BEFORE,
        after=INVOICE_AFTER,
    )

    (entry,) = _recent(memory_store)
    tests = entry.diff["tests"]
    assert tests["kind"] == "collection"
    assert [t["testDefinitionId"] for t in tests["added"]] == ["t2"]
    assert tests["removed"] == [] and tests["modified"] == []


def test_reordered_collection_leaves_no_diff_entry():
    before = {"tests": [{"testDefinitionId": "a"}, {"testDefinitionId": "b"}]}
    after = {"tests": [{"testDefinitionId": "b"}, {"testDefinitionId": "a"}]}

    assert build_entity_diff("PathologyInvoice", before, after) == {}


def test_unregistered_entity_keeps_raw_list_pair():
    diff = build_entity_diff("Widget", {"tests": [1]}, {"tests": [1, 2]})

    assert diff == {"tests": {"before": [1], "after": [1, 2]}}


@pytest.mark.parametrize("action", ["CREATE", "DELETE"])
def test_create_and_delete_store_empty_diff(memory_store, action):
    AuditRecorder(store=memory_store).record(
        entity_type="Patient",
        entity_id="p1",
        action=action,
        before={"name": "A"},
        after={"name": "B"},
    )

    (entry,) = _recent(memory_store)
    assert entry.action == action
    assert entry.diff == {}


def test_unchanged_update_is_still_recorded(memory_store):
    AuditRecorder(store=memory_store).record(
        entity_type="Patient", entity_id="p1", action="UPDATE", before={"a": 1}, after={"a": 1}
    )

    (entry,) = _recent(memory_store)
    assert entry.diff == {}


def test_failing_store_never_raises(caplog):
    with caplog.at_level(logging.ERROR, logger="lab_core.audit.services"):
        result = AuditRecorder(store=FailingStore()).record(
            entity_type="Patient", entity_id="p1", action="UPDATE", before={"a": 1}, after={"a": 2}
        )

    assert result is None
    assert "Audit append failed" in caplog.text


def test_timeout_is_logged_and_dropped(caplog):
    with caplog.at_level(logging.WARNING, logger="lab_core.audit.services"):
        AuditRecorder(store=SlowStore(), timeout=0.5).record(
            entity_type="Patient", entity_id="p1", action="CREATE"
        )

    assert "timed out" in caplog.text


def test_invalid_action_is_dropped_not_raised(memory_store):
    AuditRecorder(store=memory_store).record(entity_type="Patient", entity_id="p1", action="UPSERT")

    assert _recent(memory_store) == []


class CapturingTask:
    """Stands in for a Celery task; keeps what .delay() was given."""

    def __init__(self):
        self.calls = []

    def delay(self, *args):
        self.calls.append(args)


def test_task_dispatch_queues_json_payload(memory_store):
    task = CapturingTask()
    AuditRecorder(store=memory_store, task=task, timeout=0.5).record(
        entity_type="PathologyInvoice",
        entity_id="inv-9",
        action="UPDATE",
        before=INVOICE_BEFORE,
        after=INVOICE_AFTER,
        actor={"userId": "u1", "role": "RECEPTION"},
    )

    ((payload, timeout),) = task.calls
    assert timeout == 0.5
    assert json.loads(json.dumps(payload)) == payload

    entry = AuditRecord.from_payload(payload)
    assert entry.entity_id == "inv-9"
    assert entry.actor == Actor(user_id="u1", role="RECEPTION")
    assert entry.diff["payment.totalAmount"] == {"before": 500, "after": 650}
    assert entry.at.tzinfo is not None

    # queued, not written inline
    assert _recent(memory_store) == []


def test_rejected_dispatch_is_swallowed(memory_store, caplog):
    class BrokerDown:
        def delay(self, *args):
            raise ConnectionError("broker unreachable")

    with caplog.at_level(logging.ERROR, logger="lab_core.audit.services"):
        result = AuditRecorder(store=memory_store, task=BrokerDown()).record(
            entity_type="Report", entity_id="r1", action="CREATE"
        )

    assert result is None
    assert "Audit dispatch rejected" in caplog.text
    assert _recent(memory_store) == []


def test_plain_list_on_collection_field_keeps_raw_pair():
    diff = build_entity_diff("PathologyInvoice", {"tests": ["CBC"]}, {"tests": ["CBC", "LFT"]})

    assert diff == {"tests": {"before": ["CBC"], "after": ["CBC", "LFT"]}}


def test_mixed_list_on_collection_field_keeps_raw_pair():
    before = {"tests": [{"testDefinitionId": "t1"}]}
    after = {"tests": [{"testDefinitionId": "t1"}, "LFT"]}

    diff = build_entity_diff("PathologyInvoice", before, after)

    assert diff["tests"] == {"before": [{"testDefinitionId": "t1"}], "after": [{"testDefinitionId": "t1"}, "LFT"]}


def test_stored_entry_is_isolated_from_caller_snapshots(memory_store):
    after = {"name": "B", "tests": [{"testDefinitionId": "x", "cost": 1}]}
    AuditRecorder(store=memory_store).record(
        entity_type="Widget", entity_id="w1", action="UPDATE", before={"name": "A"}, after=after
    )
    after["name"] = "mutated"

    (entry,) = _recent(memory_store)
    assert entry.diff["name"] == {"before": "A", "after": "B"}


def test_monotonic_now_strictly_increases():
    stamps = [monotonic_now() for _ in range(50)]

    assert all(a < b for a, b in zip(stamps, stamps[1:]))


def test_entries_get_increasing_at():
    first = build_entry(entity_type="Patient", entity_id=1, action="CREATE")
    second = build_entry(entity_type="Patient", entity_id=1, action="UPDATE")

    assert first.at < second.at
    assert first.entity_id == "1"


def test_resolve_actor_from_mapping_variants():
    assert resolve_actor({"user_id": 7, "email": "a@lab.in"}) == Actor(user_id="7", name="a@lab.in")
    assert resolve_actor({"_id": "abc", "role": "ADMIN", "name": ""}) == Actor(user_id="abc", role="ADMIN")
    assert resolve_actor(None) == Actor()
    assert resolve_actor(object()) == Actor()


@pytest.mark.django_db
def test_resolve_actor_from_user_and_request(user):
    actor = resolve_actor(user)
    assert actor == Actor(user_id=str(user.pk), role="RECEPTION", name="Asha Rao")

    class Req:
        pass

    req = Req()
    req.user = user
    assert resolve_actor(req) == actor


@pytest.mark.django_db
def test_resolve_actor_superuser_is_admin():
    admin = get_user_model().objects.create_superuser(username="root", password="x", email="root@lab.in")

    assert resolve_actor(admin).role == "ADMIN"
    assert resolve_actor(admin).name == "root"
