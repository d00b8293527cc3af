"""
Field reconciliation when a duplicate is folded into its primary.

Policy: the primary's value wins. A duplicate value is used only where the
primary's is empty. When both are set and differ, the field is reported as
a conflict (primary still wins). List-valued fields are unioned, and a few
counters are summed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from services.listings.duplicates.types import EntityKind

# Filled from the duplicate when empty on the primary; conflicts are reported
FILL_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.VENUES: (
        "description", "website", "contactEmail", "contactPhone", "googlePlaceId",
    ),
    EntityKind.EVENTS: (
        "description", "startDate", "endDate", "ticketUrl",
        "ticketPriceMin", "ticketPriceMax",
    ),
    EntityKind.VENDORS: (
        "description", "vendorType", "website", "contactName", "contactEmail",
        "contactPhone", "address", "city", "state", "zip",
    ),
    EntityKind.PROMOTERS: (
        "description", "website", "contactEmail", "contactPhone", "socialLinks",
    ),
}

# Filled the same way, but differences are expected and not reported
QUIET_FILL_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.VENUES: ("imageUrl", "latitude", "longitude", "capacity"),
    EntityKind.EVENTS: ("imageUrl", "sourceName", "sourceUrl", "sourceId"),
    EntityKind.VENDORS: ("logoUrl",),
    EntityKind.PROMOTERS: ("logoUrl",),
}

UNION_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.VENUES: ("amenities",),
    EntityKind.EVENTS: ("categories", "tags"),
    EntityKind.VENDORS: ("products", "paymentMethods"),
    EntityKind.PROMOTERS: (),
}

SUM_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.EVENTS: ("viewCount",),
}


@dataclass
class FoldPlan:
    # Column updates to apply to the primary
    values: dict[str, Any] = field(default_factory=dict)
    conflicts: list[str] = field(default_factory=list)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def as_list(value: Any) -> list:
    """List columns may arrive as lists or as JSON text ('["a", "b"]')."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            parsed = json.loads(value)
        except ValueError:
            return [value]
        return parsed if isinstance(parsed, list) else [parsed]
    return [value]


def _item_key(item: Any) -> Any:
    if isinstance(item, str):
        return item.strip().lower()
    return json.dumps(item, sort_keys=True, default=str)


def union_lists(primary: Any, duplicate: Any) -> list:
    """Primary items first, then duplicate items not already present (case-insensitive)."""
    merged = []
    seen = set()
    for item in as_list(primary) + as_list(duplicate):
        key = _item_key(item)
        if key in seen:
            continue
        seen.add(key)
        merged.append(item)
    return merged


def _differs(a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return a.strip() != b.strip()
    return a != b


def plan_fold(kind: EntityKind, primary: dict, duplicate: dict) -> FoldPlan:
    plan = FoldPlan()

    for name in FILL_FIELDS.get(kind, ()):
        p, d = primary.get(name), duplicate.get(name)
        if is_empty(d):
            continue
        if is_empty(p):
            plan.values[name] = d
        elif _differs(p, d):
            plan.conflicts.append(name)

    for name in QUIET_FILL_FIELDS.get(kind, ()):
        p, d = primary.get(name), duplicate.get(name)
        if is_empty(p) and not is_empty(d):
            plan.values[name] = d

    for name in UNION_FIELDS.get(kind, ()):
        merged = union_lists(primary.get(name), duplicate.get(name))
        if merged != as_list(primary.get(name)):
            plan.values[name] = merged

    for name in SUM_FIELDS.get(kind, ()):
        extra = duplicate.get(name) or 0
        if extra:
            plan.values[name] = (primary.get(name) or 0) + extra

    return plan
