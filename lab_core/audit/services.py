# lab_core/audit/services.py
from __future__ import annotations

import json
import logging
import socket
import threading
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional
from uuid import UUID

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.core.signals import setting_changed
from django.dispatch import receiver
from django.utils import timezone

from lab_core.audit.collection_diff import diff_collection, is_line_item_change
from lab_core.audit.diffing import build_diff, storable_diff
from lab_core.audit.models import AuditAction
from lab_core.audit.records import Actor, AuditRecord
from lab_core.audit.registry import get_profile
from lab_core.audit.stores import AuditStore, get_default_store
from lab_core.audit.tasks import append_audit_entry

logger = logging.getLogger(__name__)

_HOST = socket.gethostname()

# -------------------------------------------------------------------
# Per-process monotonic clock for `at`
# -------------------------------------------------------------------

_clock_lock = threading.Lock()
_last_at: Optional[datetime] = None


def monotonic_now() -> datetime:
    global _last_at
    with _clock_lock:
        now = timezone.now()
        if _last_at is not None and now <= _last_at:
            now = _last_at + timedelta(microseconds=1)
        _last_at = now
        return now


# -------------------------------------------------------------------
# Actor + diff assembly
# -------------------------------------------------------------------

def _first(mapping: Mapping, *keys: str) -> Any:
    for k in keys:
        v = mapping.get(k)
        if v not in (None, ""):
            return v
    return None


def _user_role(user) -> Optional[str]:
    if getattr(user, "is_superuser", False):
        return "ADMIN"
    role = getattr(user, "role", None)
    if role:
        return str(role)
    groups = getattr(user, "groups", None)
    if groups is not None:
        return groups.values_list("name", flat=True).order_by("name").first()
    return None


def resolve_actor(ctx: Any) -> Actor:
    """
    Best-effort attribution from a mapping ({userId|user_id|id, role, name|email}),
    a Django user, or a request carrying .user. Anything else -> anonymous Actor().
    """
    if ctx is None:
        return Actor()
    if isinstance(ctx, Actor):
        return ctx

    if isinstance(ctx, Mapping):
        uid = _first(ctx, "userId", "user_id", "id", "_id")
        role = _first(ctx, "role")
        name = _first(ctx, "name", "email")
    else:
        user = getattr(ctx, "user", ctx)
        if not getattr(user, "is_authenticated", False):
            return Actor()
        uid = getattr(user, "pk", None)
        try:
            role = _user_role(user)
        except Exception:
            logger.warning("Could not resolve actor role", exc_info=True)
            role = None
        full_name = user.get_full_name() if hasattr(user, "get_full_name") else ""
        name = full_name or getattr(user, "username", None) or getattr(user, "email", None)

    return Actor(
        user_id=str(uid) if uid is not None else None,
        role=str(role) if role else None,
        name=str(name) if name else None,
    )


def build_entity_diff(
    entity_type: str,
    before: Any,
    after: Any,
    allowlist: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """
    Field diff plus identity-aware diffs for the profile's collection fields.
    Returns the JSON-storable form.
    """
    diff = build_diff(before, after, allowlist)

    for cf in get_profile(entity_type).collection_fields:
        change = diff.get(cf.path)
        if change is None:
            continue
        b, a = change["before"], change["after"]
        # plain lists (codes, tags) keep their raw pair
        if not is_line_item_change(b, a):
            continue

        result = diff_collection(
            b if isinstance(b, list) else [],
            a if isinstance(a, list) else [],
            cf.key_fn,
            cf.signature_fn,
        )
        if result:
            diff[cf.path] = result.as_marker()
        else:
            # same items, different order
            diff.pop(cf.path)

    return storable_diff(diff)


def _json_safe(value: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


def build_entry(
    *,
    entity_type: str,
    entity_id: Any,
    action: str,
    before: Any = None,
    after: Any = None,
    actor: Any = None,
    allowlist: Optional[Iterable[str]] = None,
    meta: Optional[Dict[str, Any]] = None,
    tenant_id: UUID | None = None,
    facility_id: UUID | None = None,
) -> AuditRecord:
    action = str(action or "").upper()
    if action not in AuditAction.values:
        raise ValueError(f"Unknown audit action: {action!r}")

    diff = build_entity_diff(entity_type, before, after, allowlist) if action == AuditAction.UPDATE else {}

    return AuditRecord(
        entity_type=str(entity_type),
        entity_id="" if entity_id is None else str(entity_id),
        action=action,
        actor=resolve_actor(actor),
        diff=diff,
        meta=_json_safe({**(meta or {}), "host": _HOST}),
        tenant_id=tenant_id,
        facility_id=facility_id,
        at=monotonic_now(),
    )


# -------------------------------------------------------------------
# Recorder
# -------------------------------------------------------------------

class AuditRecorder:
    """
    Fire-and-forget audit writer.

    record() never raises and never returns an error: diff/actor/storage
    failures and append timeouts are logged and dropped. With a task the
    serialised entry is queued with task.delay(); without one the append
    runs inline against `store`.
    """

    def __init__(
        self,
        *,
        store: AuditStore,
        task: Any = None,
        timeout: float | None = None,
    ) -> None:
        self.store = store
        self.task = task
        self.timeout = timeout

    def record(
        self,
        *,
        entity_type: str,
        entity_id: Any,
        action: str,
        before: Any = None,
        after: Any = None,
        actor: Any = None,
        allowlist: Optional[Iterable[str]] = None,
        meta: Optional[Dict[str, Any]] = None,
        tenant_id: UUID | None = None,
        facility_id: UUID | None = None,
    ) -> None:
        log_extra = {"entity_type": entity_type, "entity_id": str(entity_id), "audit_action": action}
        try:
            entry = build_entry(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                before=before,
                after=after,
                actor=actor,
                allowlist=allowlist,
                meta=meta,
                tenant_id=tenant_id,
                facility_id=facility_id,
            )
        except Exception:
            logger.exception("Audit entry could not be built; dropped", extra=log_extra)
            return None

        if self.task is None:
            self._deliver(entry)
            return None

        try:
            self.task.delay(entry.as_payload(), self.timeout)
        except Exception:
            logger.exception("Audit dispatch rejected; dropped", extra=log_extra)
        return None

    def _deliver(self, entry: AuditRecord) -> None:
        log_extra = {"entity_type": entry.entity_type, "entity_id": entry.entity_id, "audit_action": entry.action}
        try:
            self.store.append(entry, timeout=self.timeout)
        except TimeoutError:
            logger.warning("Audit append timed out after %ss; dropped", self.timeout, extra=log_extra)
        except Exception:
            logger.exception("Audit append failed; dropped", extra=log_extra)


# -------------------------------------------------------------------
# Process-wide recorder (built from settings)
# -------------------------------------------------------------------

_recorder: AuditRecorder | None = None


def get_audit_recorder() -> AuditRecorder:
    global _recorder
    if _recorder is None:
        use_async = bool(getattr(settings, "AUDIT_ASYNC_DISPATCH", True))
        _recorder = AuditRecorder(
            store=get_default_store(),
            task=append_audit_entry if use_async else None,
            timeout=getattr(settings, "AUDIT_APPEND_TIMEOUT_SECONDS", 2.0),
        )
    return _recorder


@receiver(setting_changed)
def _reset_recorder(*, setting, **kwargs) -> None:
    global _recorder
    if setting.startswith("AUDIT_"):
        _recorder = None


class AuditService:
    """
    Central audit writer used by domain services.
    """

    @staticmethod
    def record(**kwargs) -> None:
        get_audit_recorder().record(**kwargs)
