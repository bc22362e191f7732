# lab_core/audit/normalizer.py
"""
Flattens nested snapshots into dot-path -> scalar mappings.

Mappings are descended into; lists and date/time values are opaque leaves
(collection-aware comparison of lists lives in collection_diff).
"""
from __future__ import annotations

import datetime as dt
import json
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any, Dict
from uuid import UUID

from django.core.serializers.json import DjangoJSONEncoder

_TEMPORAL = (dt.datetime, dt.date, dt.time)


def _is_branch(value: Any) -> bool:
    return isinstance(value, Mapping)


def scalarize(value: Any) -> Any:
    """
    Normalized leaf form. JSON scalars, Decimals, date/time values and lists pass
    through; everything else gets a deterministic representation.
    """
    if value is None or isinstance(value, (bool, int, float, str, Decimal)):
        return value
    if isinstance(value, _TEMPORAL):
        return value
    if isinstance(value, (list, tuple)):
        return [_plain(v) if _is_branch(v) else scalarize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((scalarize(v) for v in value), key=_sort_key)
    if isinstance(value, UUID):
        return str(value)
    return str(value)


def _plain(value: Mapping) -> Dict[str, Any]:
    # Nested mappings inside lists keep their shape (line items, adjustments).
    return {str(k): (_plain(v) if _is_branch(v) else scalarize(v)) for k, v in value.items()}


def _sort_key(value: Any) -> str:
    return canonical_json(value)


def flatten(record: Any, prefix: str = "") -> Dict[str, Any]:
    """
    flatten({"name": {"first": "A"}, "tests": [..]}) -> {"name.first": "A", "tests": [..]}

    None or a non-mapping input yields {}. Absent intermediate keys simply do not appear.
    """
    out: Dict[str, Any] = {}
    if not _is_branch(record):
        return out
    _walk(record, prefix, out)
    return out


def _walk(node: Mapping, prefix: str, out: Dict[str, Any]) -> None:
    for key, value in node.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if _is_branch(value):
            _walk(value, path, out)
        else:
            out[path] = scalarize(value)


def canonical_json(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True, cls=DjangoJSONEncoder, separators=(",", ":"))
    except (TypeError, ValueError):
        return repr(value)


def canonical(value: Any) -> Any:
    """
    Equality key used by the differs.

    - date/time -> ISO string
    - lists / mappings -> sorted-key JSON
    - numbers compare numerically (bool kept distinct from 1/0)
    - everything else by direct equality
    """
    if isinstance(value, _TEMPORAL):
        return value.isoformat()
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, (int, float, Decimal)):
        if value != value:  # NaN
            return ("num", "nan")
        try:
            return ("num", Decimal(str(value)).normalize())
        except InvalidOperation:
            return ("num", str(value))
    if isinstance(value, (list, tuple, Mapping)):
        return ("json", canonical_json(value))
    return value
