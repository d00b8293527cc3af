"""
Field-weighted similarity between two entities of the same kind.

Each kind compares a fixed set of weighted fields. A field counts only when
both entities have a value for it; similarity is the weighted sum of field
scores over the total weight of those comparable fields.

Field scores:
  1.0   exact match after normalization
  0.8   whole-token containment ("Fairgrounds" / "The Fairgrounds")
  0.6+  fuzzy overlap (combined Levenshtein/Jaccard at or above the floor)
  0.0   otherwise

Pure functions: no I/O, deterministic, symmetric in their two arguments.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Optional

from services.listings.duplicates.normalize import (
    combined_similarity,
    normalize_domain,
    normalize_email,
    normalize_phone,
    normalize_text,
    token_containment,
)
from services.listings.duplicates.types import EntityKind

CONTAINMENT_CREDIT = 0.8
FUZZY_FLOOR = 0.6

# Shared Google Place ID means the same physical venue
EXACT_KEY_SIMILARITY = 0.99


@dataclass(frozen=True)
class SimilarityScore:
    similarity: float
    matched_fields: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Field comparators: return None when the field is not comparable
# ---------------------------------------------------------------------------

def compare_text(a: Any, b: Any) -> Optional[float]:
    norm_a, norm_b = normalize_text(a), normalize_text(b)
    if not norm_a or not norm_b:
        return None
    if norm_a == norm_b:
        return 1.0
    if token_containment(norm_a, norm_b):
        return CONTAINMENT_CREDIT
    sim = combined_similarity(norm_a, norm_b)
    return sim if sim >= FUZZY_FLOOR else 0.0


def _exact(normalizer: Callable[[Any], str]) -> Callable[[Any, Any], Optional[float]]:
    def compare(a: Any, b: Any) -> Optional[float]:
        norm_a, norm_b = normalizer(a), normalizer(b)
        if not norm_a or not norm_b:
            return None
        return 1.0 if norm_a == norm_b else 0.0
    return compare


compare_id = _exact(lambda v: str(v).strip() if v else "")
compare_email = _exact(normalize_email)
compare_phone = _exact(normalize_phone)
compare_domain = _exact(normalize_domain)


def _as_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        return None


def _day_span(entity: dict) -> Optional[tuple[date, date]]:
    start = _as_date(entity.get("startDate"))
    if start is None:
        return None
    end = _as_date(entity.get("endDate")) or start
    if end < start:
        start, end = end, start
    return start, end


def compare_date_ranges(a: Optional[tuple], b: Optional[tuple]) -> Optional[float]:
    """Day-span intersection over union: identical ranges 1.0, disjoint 0.0."""
    if a is None or b is None:
        return None
    overlap = (min(a[1], b[1]) - max(a[0], b[0])).days + 1
    if overlap <= 0:
        return 0.0
    union = (max(a[1], b[1]) - min(a[0], b[0])).days + 1
    return overlap / union


# ---------------------------------------------------------------------------
# Per-kind field sets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldRule:
    name: str
    weight: float
    compare: Callable[[Any, Any], Optional[float]]
    extract: Optional[Callable[[dict], Any]] = None

    def value(self, entity: dict) -> Any:
        if self.extract is not None:
            return self.extract(entity)
        return entity.get(self.name)


KIND_FIELDS: dict[EntityKind, tuple[FieldRule, ...]] = {
    EntityKind.VENUES: (
        FieldRule("name", 0.40, compare_text),
        FieldRule("address", 0.20, compare_text),
        FieldRule("city", 0.15, compare_text),
        FieldRule("state", 0.10, compare_text),
        FieldRule("zip", 0.15, compare_text),
    ),
    EntityKind.EVENTS: (
        FieldRule("name", 0.45, compare_text),
        FieldRule("dates", 0.25, compare_date_ranges, extract=_day_span),
        FieldRule("venueId", 0.15, compare_id),
        FieldRule("promoterId", 0.15, compare_id),
    ),
    EntityKind.VENDORS: (
        FieldRule("businessName", 0.45, compare_text),
        FieldRule("contactEmail", 0.20, compare_email),
        FieldRule("contactPhone", 0.15, compare_phone),
        FieldRule("website", 0.10, compare_domain),
        FieldRule("vendorType", 0.10, compare_text),
    ),
    EntityKind.PROMOTERS: (
        FieldRule("companyName", 0.55, compare_text),
        FieldRule("contactEmail", 0.20, compare_email),
        FieldRule("contactPhone", 0.10, compare_phone),
        FieldRule("website", 0.15, compare_domain),
    ),
}

# Fields whose shared non-empty value alone identifies the same thing
EXACT_MATCH_KEYS: dict[EntityKind, str] = {
    EntityKind.VENUES: "googlePlaceId",
}


def score(kind: EntityKind, a: dict, b: dict) -> SimilarityScore:
    """
    Compare two same-kind entities.

    matched_fields lists every field that contributed, highest contribution
    first; ties keep the field declaration order so the result does not
    depend on argument order.
    """
    total_weight = 0.0
    earned = 0.0
    contributions: list[tuple[float, int, str]] = []

    for position, rule in enumerate(KIND_FIELDS[kind]):
        result = rule.compare(rule.value(a), rule.value(b))
        if result is None:
            continue
        total_weight += rule.weight
        if result > 0:
            contribution = rule.weight * result
            earned += contribution
            contributions.append((contribution, position, rule.name))

    similarity = round(earned / total_weight, 2) if total_weight else 0.0
    contributions.sort(key=lambda c: (-c[0], c[1]))
    matched = tuple(name for _, _, name in contributions)

    key_field = EXACT_MATCH_KEYS.get(kind)
    if key_field and compare_id(a.get(key_field), b.get(key_field)) == 1.0:
        similarity = max(similarity, EXACT_KEY_SIMILARITY)
        matched = (key_field,) + matched

    return SimilarityScore(similarity=similarity, matched_fields=matched)
