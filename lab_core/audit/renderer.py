# lab_core/audit/renderer.py
"""
Turns a stored diff into display rows.

Stored diffs are never modified or truncated here; noise suppression, the
per-entity display allow-list and the row cap are presentation policy only.
"""
from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from django.conf import settings

from lab_core.audit.collection_diff import diff_collection, is_collection_marker, is_line_item_change
from lab_core.audit.models import AuditAction
from lab_core.audit.registry import CollectionField, EntityProfile, get_profile

# volatile / internal fields, hidden for every entity type
NOISE_PATHS = re.compile(
    r"(updatedAt|createdAt|lastEditedAt|printedAt|collectionDate|bookingDate|registrationDate|"
    r"dateOfBirth|dob|__v|_id|yearNumber|todayNumber|buffer|"
    r"updated_at|created_at|date_of_birth|(^|\.)version$)",
    re.I,
)

LEGACY_TESTS_PATH = re.compile(r"(^|\.)tests($|Before|After)$", re.I)
TIMESTAMPISH = re.compile(r"T\d\d:\d\d")

LABELS: Dict[str, str] = {
    "firstName": "First Name",
    "lastName": "Last Name",
    "name.first": "First Name",
    "name.last": "Last Name",
    "full_name": "Full Name",
    "patientId": "UHID",
    "mrn": "MRN",
    "phone": "Phone",
    "contact": "Phone",
    "aadharNo": "Aadhaar",
    "aadhaar": "Aadhaar",
    "address.street": "Address",
    "address.city": "City",
    "address.post": "Post",
    "address.state": "State",
    "address.zipCode": "PIN Code",
    "age": "Age",
    "ageIn": "Age Unit",
    "gender": "Gender",
    "payment.totalAmount": "Total Amount",
    "payment.paidAmount": "Paid Amount",
    "payment.dueAmount": "Due Amount",
}

EMPTY_DISPLAY = "\u2014"


@dataclass(frozen=True)
class ViewContext:
    max_rows: int = 8
    currency_symbol: str = "\u20b9"
    profile: Optional[EntityProfile] = None

    @classmethod
    def from_settings(cls, **overrides) -> "ViewContext":
        base = {
            "max_rows": int(getattr(settings, "AUDIT_RENDER_MAX_ROWS", 8)),
            "currency_symbol": getattr(settings, "AUDIT_CURRENCY_SYMBOL", "\u20b9"),
        }
        base.update(overrides)
        return cls(**base)


@dataclass(frozen=True)
class ChangeItem:
    field: str
    label: str
    before: Any
    after: Any
    change_type: str  # add | remove | edit
    display_before: str = EMPTY_DISPLAY
    display_after: str = EMPTY_DISPLAY

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------------------------------------------------
# Formatting
# -------------------------------------------------------------------

def pretty_label(path: str, labels: Optional[Dict[str, str]] = None) -> str:
    mapped = (labels or {}).get(path) or LABELS.get(path)
    if mapped:
        return mapped
    last = path.split(".")[-1] or path
    text = re.sub(r"([A-Z])", r" \1", last).replace("_", " ").strip()
    text = re.sub(r"\bId\b", "ID", text, count=1, flags=re.I)
    return text[:1].upper() + text[1:]


def _indian_grouping(digits: str) -> str:
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    parts: List[str] = []
    while len(head) > 2:
        parts.insert(0, head[-2:])
        head = head[:-2]
    if head:
        parts.insert(0, head)
    return ",".join(parts + [tail])


def format_currency(value: Any, symbol: str = "\u20b9") -> str:
    """
    150000 -> "₹1,50,000"; 650.5 -> "₹650.5" (at most 3 decimals, trailing zeros dropped).
    Non-numeric input is returned as text.
    """
    try:
        num = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return str(value)
    if not num.is_finite():
        return str(value)

    sign = "-" if num < 0 else ""
    text = format(abs(num).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP), "f")
    whole, _, frac = text.partition(".")
    frac = frac.rstrip("0")
    return f"{sign}{symbol}{_indian_grouping(whole)}" + (f".{frac}" if frac else "")


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    if isinstance(value, str):
        return value.strip() == ""
    return False


def _is_money(path: str, profile: EntityProfile) -> bool:
    return bool(profile.money_paths and profile.money_paths.search(path))


def _as_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def format_value(value: Any, path: str, profile: EntityProfile, ctx: ViewContext, *, names: bool = False) -> str:
    if is_empty(value):
        return EMPTY_DISPLAY

    money = _is_money(path, profile)

    if isinstance(value, (list, tuple)):
        if names:
            return ", ".join(str(x) for x in value)
        parts = []
        for x in value:
            if isinstance(x, (dict, list)):
                parts.append(_as_json(x))
            elif money:
                parts.append(format_currency(x, ctx.currency_symbol))
            else:
                parts.append(str(x).strip())
        out = ", ".join(parts)
        return out or EMPTY_DISPLAY

    if isinstance(value, dict):
        return _as_json(value)

    text = str(value).strip()
    if money:
        return format_currency(text, ctx.currency_symbol)
    return text or EMPTY_DISPLAY


# -------------------------------------------------------------------
# Rows
# -------------------------------------------------------------------

def _collection_for(path: str, profile: EntityProfile) -> CollectionField:
    return profile.collection_field(path) or CollectionField(path=path, label=pretty_label(path, profile.labels))


def _collection_rows(path: str, change: Dict[str, Any], profile: EntityProfile, ctx: ViewContext) -> List[ChangeItem]:
    cf = _collection_for(path, profile)
    label = cf.label or pretty_label(path, profile.labels)

    if is_collection_marker(change):
        added, removed, modified = change.get("added") or [], change.get("removed") or [], change.get("modified") or []
    else:
        before = change.get("before")
        after = change.get("after")
        result = diff_collection(
            before if isinstance(before, list) else [],
            after if isinstance(after, list) else [],
            cf.key_fn,
            cf.signature_fn,
        )
        added, removed, modified = result.added, result.removed, result.modified

    def names(items):
        return [cf.name_fn(i) for i in items]

    def row(before, after, change_type):
        return ChangeItem(
            field=path,
            label=label,
            before=before,
            after=after,
            change_type=change_type,
            display_before=format_value(before, path, profile, ctx, names=True),
            display_after=format_value(after, path, profile, ctx, names=True),
        )

    rows = []
    if removed:
        rows.append(row(names(removed), None, "remove"))
    if added:
        rows.append(row(None, names(added), "add"))
    if modified:
        rows.append(row(names(modified), names(modified), "edit"))
    return rows


def _is_collection_change(path: str, change: Dict[str, Any], profile: EntityProfile) -> bool:
    if is_collection_marker(change):
        return True
    if not (profile.collection_field(path) or LEGACY_TESTS_PATH.search(path)):
        return False
    return is_line_item_change(change.get("before"), change.get("after"))


def _scalar_row(path: str, change: Dict[str, Any], profile: EntityProfile, ctx: ViewContext) -> Optional[ChangeItem]:
    before = change.get("before")
    after = change.get("after")

    for v in (before, after):
        if isinstance(v, str) and TIMESTAMPISH.search(v):
            return None

    b_empty, a_empty = is_empty(before), is_empty(after)
    if b_empty and a_empty:
        return None

    display_before = format_value(before, path, profile, ctx)
    display_after = format_value(after, path, profile, ctx)

    if b_empty:
        change_type = "add"
    elif a_empty:
        change_type = "remove"
    else:
        if _as_json(before) == _as_json(after) or display_before == display_after:
            return None
        change_type = "edit"

    return ChangeItem(
        field=path,
        label=pretty_label(path, profile.labels),
        before=before,
        after=after,
        change_type=change_type,
        display_before=display_before,
        display_after=display_after,
    )


def render(entry, view_context: ViewContext | None = None) -> List[ChangeItem]:
    ctx = view_context or ViewContext.from_settings()
    profile = ctx.profile or get_profile(entry.entity_type)
    diff = entry.diff or {}

    items: List[ChangeItem] = []
    for path, change in diff.items():
        if len(items) >= ctx.max_rows:
            break
        if not isinstance(change, dict):
            continue
        if NOISE_PATHS.search(path) or not profile.shows(path):
            continue

        if _is_collection_change(path, change, profile):
            items.extend(_collection_rows(path, change, profile, ctx))
            continue

        item = _scalar_row(path, change, profile, ctx)
        if item is not None:
            items.append(item)

    return items[: ctx.max_rows]


# -------------------------------------------------------------------
# List helpers
# -------------------------------------------------------------------

def _preview(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return _as_json(value)
    return str(value)


def summarize(entry, limit: int = 3) -> str:
    """
    One-line preview: "a: 1 → 2; b: x → y (+4 more)".
    """
    diff = entry.diff or {}
    keys = list(diff.keys())
    parts = []
    for k in keys[:limit]:
        change = diff[k] or {}
        if is_collection_marker(change):
            parts.append(
                f"{k}: +{len(change.get('added') or [])} "
                f"-{len(change.get('removed') or [])} ~{len(change.get('modified') or [])}"
            )
            continue
        b = _preview(change["before"]) if "before" in change else EMPTY_DISPLAY
        a = _preview(change["after"]) if "after" in change else EMPTY_DISPLAY
        parts.append(f"{k}: {b} \u2192 {a}")
    more = max(0, len(keys) - len(parts))
    return "; ".join(parts) + (f" (+{more} more)" if more else "")


def has_meaningful_changes(entry, view_context: ViewContext | None = None) -> bool:
    if entry.action != AuditAction.UPDATE:
        return True
    return bool(render(entry, view_context))


def matches_text(entry, q: str) -> bool:
    """
    Case-insensitive free-text match over id, actor, meta tags and the raw diff.
    """
    needle = (q or "").strip().lower()
    if not needle:
        return True

    parts: List[str] = [str(entry.entity_id or "")]
    actor = getattr(entry, "actor", None)
    if actor is not None:
        parts.extend(str(v) for v in (actor.name, actor.role) if v)
    for k, v in (entry.meta or {}).items():
        if k != "host" and not isinstance(v, (dict, list)) and v is not None:
            parts.append(str(v))
    for k, change in (entry.diff or {}).items():
        parts.append(k)
        if isinstance(change, dict):
            parts.append(_preview(change.get("before", "")))
            parts.append(_preview(change.get("after", "")))

    return needle in " ".join(parts).lower()
