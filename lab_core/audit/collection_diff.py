# lab_core/audit/collection_diff.py
"""
Identity-aware diffing of line-item collections (billed tests, invoice lines).

Items are matched by key_fn(item), never by position, so a reordered list is
not a change. An item present on both sides is "modified" only when
signature_fn differs; fields outside the signature are ignored.

Duplicate keys within one side: the LAST item with that key wins.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping, Tuple

KeyFn = Callable[[Any], Hashable]
SignatureFn = Callable[[Any], Tuple[Any, ...]]

COLLECTION_KIND = "collection"


@dataclass(frozen=True)
class CollectionDiff:
    added: List[Any] = field(default_factory=list)
    removed: List[Any] = field(default_factory=list)
    modified: List[Any] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    def as_marker(self) -> Dict[str, Any]:
        return {
            "kind": COLLECTION_KIND,
            "added": list(self.added),
            "removed": list(self.removed),
            "modified": list(self.modified),
        }


def _index(items: Iterable[Any], key_fn: KeyFn) -> Dict[Hashable, Any]:
    out: Dict[Hashable, Any] = {}
    for item in items or ():
        out[key_fn(item)] = item  # last one wins
    return out


def diff_collection(
    before: Iterable[Any] | None,
    after: Iterable[Any] | None,
    key_fn: KeyFn,
    signature_fn: SignatureFn,
) -> CollectionDiff:
    before_map = _index(before, key_fn)
    after_map = _index(after, key_fn)

    removed = [item for k, item in before_map.items() if k not in after_map]
    added = [item for k, item in after_map.items() if k not in before_map]
    modified = [
        after_map[k]
        for k, item in before_map.items()
        if k in after_map and signature_fn(item) != signature_fn(after_map[k])
    ]
    return CollectionDiff(added=added, removed=removed, modified=modified)


def is_collection_marker(value: Any) -> bool:
    return isinstance(value, Mapping) and value.get("kind") == COLLECTION_KIND


def is_line_item_change(before: Any, after: Any) -> bool:
    """
    At least one side is a list and every element on both sides is a mapping.
    """
    sides = [v for v in (before, after) if isinstance(v, list)]
    if not sides:
        return False
    return all(isinstance(item, Mapping) for side in sides for item in side)


# -------------------------------------------------------------------
# Standard line-item identity / signature
# -------------------------------------------------------------------

def _get(item: Any, *names: str, default: Any = None) -> Any:
    if not isinstance(item, Mapping):
        return default
    for n in names:
        v = item.get(n)
        if v is not None and v != "":
            return v
    return default


def _num(value: Any, default: str) -> Decimal:
    try:
        return Decimal(str(value if value is not None else default)).normalize()
    except (InvalidOperation, ValueError):
        return Decimal(default)


def _item_name(item: Any) -> str:
    return str(_get(item, "name", "testName", default="") or "").strip()


def line_item_key(item: Any) -> str:
    """
    Reference id when present (test definition, service head, own id), otherwise the trimmed name.
    """
    ref = _get(item, "testDefinitionId", "serviceHeadId", "id")
    if ref is not None:
        return str(ref)
    return _item_name(item)


def line_item_name(item: Any) -> str:
    return _item_name(item) or line_item_key(item)


def line_item_signature(item: Any) -> Tuple[Decimal, Decimal, Decimal]:
    """
    (quantity, cost, discount). Missing quantity counts as 1; cost falls back to netAmount.
    """
    quantity = _get(item, "quantity", "qty")
    cost = _get(item, "cost", "netAmount")
    discount = _get(item, "discount")
    return (_num(quantity, "1"), _num(cost, "0"), _num(discount, "0"))
