# lab_core/audit/tasks.py
import logging

from celery import shared_task
from celery.exceptions import SoftTimeLimitExceeded
from django.conf import settings

logger = logging.getLogger(__name__)


@shared_task(
    name="lab_core.audit.tasks.append_audit_entry",
    ignore_result=True,
    soft_time_limit=getattr(settings, "AUDIT_TASK_SOFT_TIME_LIMIT", 5),
    time_limit=getattr(settings, "AUDIT_TASK_TIME_LIMIT", 10),
)
def append_audit_entry(payload, timeout=None):
    """
    Append one serialised AuditRecord to the default store.

    Failures are logged and dropped; audit writes are never retried.
    """
    from lab_core.audit.records import AuditRecord
    from lab_core.audit.stores import get_default_store

    entry = AuditRecord.from_payload(payload)
    log_extra = {"entity_type": entry.entity_type, "entity_id": entry.entity_id, "audit_action": entry.action}

    try:
        get_default_store().append(entry, timeout=timeout)
    except (TimeoutError, SoftTimeLimitExceeded):
        logger.warning("Audit append timed out; dropped", extra=log_extra)
    except Exception:
        logger.exception("Audit append failed; dropped", extra=log_extra)
