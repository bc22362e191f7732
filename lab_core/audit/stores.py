# lab_core/audit/stores.py
"""
Append-only audit persistence.

Two interchangeable backends satisfy AuditStore:
  - DatabaseAuditStore: Django ORM (production)
  - InMemoryAuditStore: process-local list (dev/tests)

Selection follows AUDIT_STORE_USE_DB.
"""
from __future__ import annotations

import copy
import threading
from datetime import date, datetime, time, timedelta, tzinfo
from time import monotonic
from typing import Dict, Iterable, List, Optional, Protocol
from uuid import UUID

from django.conf import settings
from django.db import DatabaseError, connection, transaction
from django.utils import timezone

from lab_core.audit.models import AuditEntry
from lab_core.audit.records import AuditRecord
from lab_core.audit.selectors import audit_entries_between, recent_audit_entries
from lab_core.common.api.exceptions import AuditStoreUnavailable

DAILY_LIMIT_DEFAULT = 2000
DAILY_LIMIT_MAX = 5000
RECENT_LIMIT_DEFAULT = 200
RECENT_LIMIT_MAX = 2000

Grouped = Dict[str, List[AuditRecord]]


class AuditStore(Protocol):
    def append(self, entry: AuditRecord, *, timeout: float | None = None) -> None:
        ...

    def query_by_day(
        self,
        day: str | date,
        entity_types: Iterable[str] | None = None,
        *,
        tenant_id: UUID | None = None,
        facility_id: UUID | None = None,
        limit: int | None = None,
        tz: tzinfo | None = None,
    ) -> Grouped:
        ...

    def query_recent(
        self,
        limit: int | None = None,
        *,
        entity_types: Iterable[str] | None = None,
        tenant_id: UUID | None = None,
        facility_id: UUID | None = None,
    ) -> List[AuditRecord]:
        ...


# -------------------------------------------------------------------
# Shared helpers
# -------------------------------------------------------------------

def parse_day(value: str | date) -> date:
    """
    Accepts a date or a strict YYYY-MM-DD string. Raises ValueError otherwise.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = (value or "").strip()
    if len(raw) != 10:
        raise ValueError("Invalid date (YYYY-MM-DD expected).")
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError("Invalid date (YYYY-MM-DD expected).")


def day_bounds(day: date, tz: tzinfo | None = None) -> tuple[datetime, datetime]:
    """
    [local midnight, next local midnight) in the caller's zone.
    """
    zone = tz or timezone.get_current_timezone()
    start = timezone.make_aware(datetime.combine(day, time.min), zone)
    end = timezone.make_aware(datetime.combine(day + timedelta(days=1), time.min), zone)
    return start, end


def clamp_limit(value, *, default: int, maximum: int) -> int:
    try:
        n = int(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        n = default
    return max(1, min(n, maximum))


def group_by_entity_type(entries: Iterable[AuditRecord]) -> Grouped:
    grouped: Grouped = {}
    for e in entries:
        grouped.setdefault(e.entity_type or "Unknown", []).append(e)
    return grouped


# -------------------------------------------------------------------
# Django ORM store
# -------------------------------------------------------------------

_clock = monotonic


def _apply_statement_timeout(timeout: float) -> Optional[str]:
    """
    Transaction-local statement_timeout on PostgreSQL; no-op elsewhere.
    Returns the value it replaced.
    """
    if connection.vendor != "postgresql":
        return None
    with connection.cursor() as cur:
        cur.execute("SELECT current_setting('statement_timeout')")
        (previous,) = cur.fetchone()
        cur.execute("SELECT set_config('statement_timeout', %s, true)", [str(int(timeout * 1000))])
    return previous


def _restore_statement_timeout(previous: str) -> None:
    with connection.cursor() as cur:
        cur.execute("SELECT set_config('statement_timeout', %s, true)", [previous])


class DatabaseAuditStore:
    def append(self, entry: AuditRecord, *, timeout: float | None = None) -> None:
        """
        Insert inside a savepoint. With a timeout the insert runs under a
        statement_timeout (PostgreSQL) and an append that overran the timeout
        is rolled back and raised as TimeoutError on every backend.
        """
        started = _clock()

        with transaction.atomic():
            previous = _apply_statement_timeout(timeout) if timeout else None
            AuditEntry.objects.create(**entry.model_kwargs())
            # a caller's outer transaction must not inherit our bound
            if previous is not None:
                _restore_statement_timeout(previous)
            if timeout and _clock() - started > timeout:
                raise TimeoutError("Timed out appending to the audit store.")

    def query_by_day(
        self,
        day: str | date,
        entity_types: Iterable[str] | None = None,
        *,
        tenant_id: UUID | None = None,
        facility_id: UUID | None = None,
        limit: int | None = None,
        tz: tzinfo | None = None,
    ) -> Grouped:
        start, end = day_bounds(parse_day(day), tz)
        n = clamp_limit(limit, default=DAILY_LIMIT_DEFAULT, maximum=DAILY_LIMIT_MAX)

        qs = audit_entries_between(
            start=start,
            end=end,
            tenant_id=tenant_id,
            facility_id=facility_id,
            entity_types=entity_types,
        )
        try:
            rows = list(qs[:n])
        except DatabaseError as exc:
            raise AuditStoreUnavailable() from exc

        return group_by_entity_type(AuditRecord.from_model(r) for r in rows)

    def query_recent(
        self,
        limit: int | None = None,
        *,
        entity_types: Iterable[str] | None = None,
        tenant_id: UUID | None = None,
        facility_id: UUID | None = None,
    ) -> List[AuditRecord]:
        n = clamp_limit(limit, default=RECENT_LIMIT_DEFAULT, maximum=RECENT_LIMIT_MAX)

        qs = recent_audit_entries(tenant_id=tenant_id, facility_id=facility_id, entity_types=entity_types)
        try:
            rows = list(qs[:n])
        except DatabaseError as exc:
            raise AuditStoreUnavailable() from exc

        return [AuditRecord.from_model(r) for r in rows]


# -------------------------------------------------------------------
# In-memory store
# -------------------------------------------------------------------

class InMemoryAuditStore:
    """
    Thread-safe, process-local. Entries are copied in and out so nothing a
    caller holds can alter what was stored.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: List[AuditRecord] = []

    def append(self, entry: AuditRecord, *, timeout: float | None = None) -> None:
        if not self._lock.acquire(timeout=timeout if timeout else -1):
            raise TimeoutError("Timed out waiting for the audit store.")
        try:
            self._entries.append(copy.deepcopy(entry))
        finally:
            self._lock.release()

    def _snapshot(self) -> List[AuditRecord]:
        with self._lock:
            return list(self._entries)

    @staticmethod
    def _matches(e: AuditRecord, entity_types, tenant_id, facility_id) -> bool:
        if isinstance(entity_types, str):
            entity_types = (entity_types,)
        types = {t for t in (entity_types or []) if t}
        if types and e.entity_type not in types:
            return False
        if tenant_id and e.tenant_id != tenant_id:
            return False
        if facility_id and e.facility_id != facility_id:
            return False
        return True

    def query_by_day(
        self,
        day: str | date,
        entity_types: Iterable[str] | None = None,
        *,
        tenant_id: UUID | None = None,
        facility_id: UUID | None = None,
        limit: int | None = None,
        tz: tzinfo | None = None,
    ) -> Grouped:
        start, end = day_bounds(parse_day(day), tz)
        n = clamp_limit(limit, default=DAILY_LIMIT_DEFAULT, maximum=DAILY_LIMIT_MAX)

        hits = [
            e
            for e in self._snapshot()
            if start <= e.at < end and self._matches(e, entity_types, tenant_id, facility_id)
        ]
        hits.sort(key=lambda e: e.at, reverse=True)
        return group_by_entity_type(copy.deepcopy(e) for e in hits[:n])

    def query_recent(
        self,
        limit: int | None = None,
        *,
        entity_types: Iterable[str] | None = None,
        tenant_id: UUID | None = None,
        facility_id: UUID | None = None,
    ) -> List[AuditRecord]:
        n = clamp_limit(limit, default=RECENT_LIMIT_DEFAULT, maximum=RECENT_LIMIT_MAX)

        hits = [e for e in self._snapshot() if self._matches(e, entity_types, tenant_id, facility_id)]
        hits.sort(key=lambda e: e.at, reverse=True)
        return [copy.deepcopy(e) for e in hits[:n]]


_MEMORY_STORE = InMemoryAuditStore()


def _use_db() -> bool:
    return bool(getattr(settings, "AUDIT_STORE_USE_DB", True))


def get_default_store() -> AuditStore:
    if _use_db():
        return DatabaseAuditStore()
    return _MEMORY_STORE
