# lab_core/audit/snapshots.py
from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, Dict, Iterable


def snapshot(instance: Any, *, exclude: Iterable[str] = ()) -> Dict[str, Any]:
    """
    Plain dict copy of a record for before/after capture.

    - model instances: every concrete field (FKs by attname, e.g. "patient_id")
    - mappings: deep copy
    - None: {}
    """
    if instance is None:
        return {}

    skip = set(exclude)

    if isinstance(instance, Mapping):
        return {k: copy.deepcopy(v) for k, v in instance.items() if k not in skip}

    data: Dict[str, Any] = {}
    for f in instance._meta.concrete_fields:
        key = f.attname if f.is_relation else f.name
        if f.name in skip or key in skip:
            continue
        data[key] = f.value_from_object(instance)
    return data
