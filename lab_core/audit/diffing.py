# lab_core/audit/diffing.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Optional

from django.core.serializers.json import DjangoJSONEncoder

from lab_core.audit.normalizer import canonical, flatten

logger = logging.getLogger(__name__)

Diff = Dict[str, Dict[str, Any]]


class _Missing:
    """
    Marks the absent side of a pair (field present in only one snapshot).
    Distinct from None, "" and 0.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return (_Missing, ())


MISSING = _Missing()


def values_equal(a: Any, b: Any) -> bool:
    if a is MISSING or b is MISSING:
        return a is b
    try:
        return canonical(a) == canonical(b)
    except Exception:
        logger.debug("canonical comparison failed; falling back to repr", exc_info=True)
        return repr(a) == repr(b)


def build_diff(before: Any, after: Any, allowlist: Optional[Iterable[str]] = None) -> Diff:
    """
    Path -> {"before": v1, "after": v2} for every path whose normalized values differ.

    Candidate paths are the allow-list when given, otherwise the union of both
    snapshots' paths (before-order first, then paths only present after).
    """
    b = flatten(before)
    a = flatten(after)

    if allowlist is not None:
        keys = list(dict.fromkeys(allowlist))
    else:
        keys = list(b.keys()) + [k for k in a.keys() if k not in b]

    diff: Diff = {}
    for key in keys:
        bv = b.get(key, MISSING)
        av = a.get(key, MISSING)
        if not values_equal(bv, av):
            diff[key] = {"before": bv, "after": av}
    return diff


def _to_json_safe(value: Any) -> Any:
    # Round-trip through the Django encoder so Decimal/date/UUID become JSON values.
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


def storable_pair(pair: Dict[str, Any]) -> Dict[str, Any]:
    """
    JSON form of a pair: MISSING sides are omitted entirely.
    """
    out: Dict[str, Any] = {}
    for side in ("before", "after"):
        value = pair.get(side, MISSING)
        if value is not MISSING:
            out[side] = _to_json_safe(value)
    return out


def storable_diff(diff: Diff) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for path, change in diff.items():
        if change.get("kind") == "collection":
            out[path] = _to_json_safe(change)
        else:
            out[path] = storable_pair(change)
    return out
