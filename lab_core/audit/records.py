# lab_core/audit/records.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID


@dataclass(frozen=True)
class Actor:
    user_id: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None

    def as_dict(self) -> Dict[str, str]:
        out = {}
        if self.user_id:
            out["userId"] = self.user_id
        if self.role:
            out["role"] = self.role
        if self.name:
            out["name"] = self.name
        return out


@dataclass(frozen=True)
class AuditRecord:
    """
    Store-facing audit entry. Built once by the recorder, never mutated afterwards.
    """
    entity_type: str
    entity_id: str
    action: str
    at: datetime
    actor: Actor = field(default_factory=Actor)
    diff: Dict[str, Any] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    tenant_id: Optional[UUID] = None
    facility_id: Optional[UUID] = None
    id: UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def from_model(cls, row) -> "AuditRecord":
        return cls(
            id=row.id,
            tenant_id=row.tenant_id,
            facility_id=row.facility_id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            action=row.action,
            actor=Actor(
                user_id=row.actor_user_id or None,
                role=row.actor_role or None,
                name=row.actor_name or None,
            ),
            diff=row.diff or {},
            meta=row.meta or {},
            at=row.at,
        )

    def model_kwargs(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "facility_id": self.facility_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_user_id": self.actor.user_id or "",
            "actor_role": self.actor.role or "",
            "actor_name": self.actor.name or "",
            "diff": self.diff,
            "meta": self.meta,
            "at": self.at,
        }

    def as_payload(self) -> Dict[str, Any]:
        """
        JSON-safe form for task queues. Inverse of from_payload().
        """
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id) if self.tenant_id else None,
            "facility_id": str(self.facility_id) if self.facility_id else None,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor.as_dict(),
            "diff": self.diff,
            "meta": self.meta,
            "at": self.at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AuditRecord":
        actor = payload.get("actor") or {}
        return cls(
            id=UUID(payload["id"]),
            tenant_id=UUID(payload["tenant_id"]) if payload.get("tenant_id") else None,
            facility_id=UUID(payload["facility_id"]) if payload.get("facility_id") else None,
            entity_type=payload["entity_type"],
            entity_id=payload["entity_id"],
            action=payload["action"],
            actor=Actor(
                user_id=actor.get("userId"),
                role=actor.get("role"),
                name=actor.get("name"),
            ),
            diff=payload.get("diff") or {},
            meta=payload.get("meta") or {},
            at=datetime.fromisoformat(payload["at"]),
        )
