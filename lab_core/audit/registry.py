# lab_core/audit/registry.py
"""
Entity-type metadata consumed by the recorder and the renderer.

Unknown entity types resolve to a permissive default profile, so new record
kinds can be audited without registering anything.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Pattern, Tuple

from lab_core.audit.collection_diff import (
    KeyFn,
    SignatureFn,
    line_item_key,
    line_item_name,
    line_item_signature,
)


@dataclass(frozen=True)
class CollectionField:
    path: str
    key_fn: KeyFn = line_item_key
    signature_fn: SignatureFn = line_item_signature
    name_fn: Callable[[Any], str] = line_item_name
    label: str = ""


@dataclass(frozen=True)
class EntityProfile:
    name: str
    collection_fields: Tuple[CollectionField, ...] = ()
    # display allow-list (None = show everything not denied)
    display_include: Optional[Pattern[str]] = None
    display_exclude: Optional[Pattern[str]] = None
    labels: Dict[str, str] = field(default_factory=dict)
    money_paths: Optional[Pattern[str]] = None

    def collection_field(self, path: str) -> Optional[CollectionField]:
        for cf in self.collection_fields:
            if cf.path == path:
                return cf
        return None

    def shows(self, path: str) -> bool:
        if self.display_exclude is not None and self.display_exclude.search(path):
            return False
        if self.display_include is not None and not self.display_include.search(path):
            return False
        return True


_registry: Dict[str, EntityProfile] = {}


def register_profile(profile: EntityProfile, *, aliases: Iterable[str] = ()) -> EntityProfile:
    _registry[profile.name] = profile
    for alias in aliases:
        _registry[alias] = profile
    return profile


def get_profile(entity_type: str | None) -> EntityProfile:
    key = entity_type or "Unknown"
    return _registry.get(key) or EntityProfile(name=key)


def registered_entity_types() -> list[str]:
    return sorted(_registry.keys())


# -------------------------------------------------------------------
# Built-in profiles
# -------------------------------------------------------------------

MONEY_PATHS = re.compile(r"^payment\.(totalAmount|paidAmount|dueAmount)$", re.I)

TESTS_FIELD = CollectionField(path="tests", label="Tests")

register_profile(
    EntityProfile(
        name="Patient",
        display_include=re.compile(
            r"(patientId|firstName|lastName|name|age|address|phone|contact|email|gender|aadhar|aadhaar|mrn)",
            re.I,
        ),
    )
)

register_profile(
    EntityProfile(
        name="Appointment",
        display_include=re.compile(r"(department|room|doctor|appointment(Date|Time)|status)", re.I),
    ),
    aliases=("OldPatient",),
)

register_profile(
    EntityProfile(
        name="PathologyInvoice",
        collection_fields=(TESTS_FIELD,),
        display_include=re.compile(
            r"(department|doctor|^mode$|doctorRefNo|appointment(Date|Time)|"
            r"payment\.(totalAmount|paidAmount|dueAmount)|(^|\.)tests$)",
            re.I,
        ),
        display_exclude=re.compile(r"(^editHistory(\.|$)|(^|\.)payment\.adjustments)", re.I),
        money_paths=MONEY_PATHS,
    ),
    aliases=("Invoice",),
)

register_profile(EntityProfile(name="Report", money_paths=MONEY_PATHS))
