"""
Entity kinds and the result types returned by the duplicate engine.

Entities travel as plain dicts keyed by column name (camelCase, as stored).
Result types serialize with to_dict() using the admin API's wire names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from services.listings.duplicates.errors import InvalidInputError


class EntityKind(str, Enum):
    """The four mergeable entity kinds. Values are the admin API's type tags."""
    VENUES = "venues"
    EVENTS = "events"
    VENDORS = "vendors"
    PROMOTERS = "promoters"

    @classmethod
    def parse(cls, value: Any) -> "EntityKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidInputError(
                f"Invalid entity kind {value!r}; expected one of "
                f"{', '.join(k.value for k in cls)}"
            ) from None

    @property
    def name_field(self) -> str:
        return ENTITY_NAME_FIELD[self]

    @property
    def favoritable_type(self) -> str:
        """Tag stored in user_favorites.favoritableType."""
        return FAVORITABLE_TYPE[self]


ENTITY_NAME_FIELD: dict[EntityKind, str] = {
    EntityKind.VENUES: "name",
    EntityKind.EVENTS: "name",
    EntityKind.VENDORS: "businessName",
    EntityKind.PROMOTERS: "companyName",
}

FAVORITABLE_TYPE: dict[EntityKind, str] = {
    EntityKind.VENUES: "VENUE",
    EntityKind.EVENTS: "EVENT",
    EntityKind.VENDORS: "VENDOR",
    EntityKind.PROMOTERS: "PROMOTER",
}


def display_name(entity: dict, kind: EntityKind) -> str:
    return entity.get(kind.name_field) or "Unknown"


# ---------------------------------------------------------------------------
# Relationship counts
# ---------------------------------------------------------------------------

@dataclass
class RelationshipCounts:
    """Rows per relationship table. None means the kind has no such relationship."""
    events: Optional[int] = None
    event_vendors: Optional[int] = None
    favorites: Optional[int] = None

    def add(self, attr: str, count: int) -> None:
        setattr(self, attr, (getattr(self, attr) or 0) + count)

    def to_dict(self) -> dict:
        wire = {
            "events": self.events,
            "eventVendors": self.event_vendors,
            "favorites": self.favorites,
        }
        return {k: v for k, v in wire.items() if v is not None}


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------

class WarningCode(str, Enum):
    RELATIONSHIPS_DISCARDED = "relationships_discarded"
    FIELD_CONFLICT = "field_conflict"
    DIFFERENT_USER_ACCOUNTS = "different_user_accounts"
    DIFFERENT_VENUE = "different_venue"
    DIFFERENT_PROMOTER = "different_promoter"
    SAME_ENTITY = "same_entity"


@dataclass(frozen=True)
class MergeWarning:
    """
    A preview finding the operator should see before confirming.

    Only SAME_ENTITY blocks a merge; every other code is informational.
    Callers render from the structured fields; message is the English default.
    """
    code: WarningCode
    relationship: Optional[str] = None
    count: Optional[int] = None
    field: Optional[str] = None
    primary_value: Any = None
    duplicate_value: Any = None

    @property
    def message(self) -> str:
        if self.code is WarningCode.RELATIONSHIPS_DISCARDED:
            return (
                f"{self.count} {self.relationship} row(s) will be discarded "
                f"as duplicates of existing primary rows"
            )
        if self.code is WarningCode.FIELD_CONFLICT:
            return (
                f"Both records define {self.field}; keeping primary value "
                f"{self.primary_value!r} over {self.duplicate_value!r}"
            )
        if self.code is WarningCode.DIFFERENT_USER_ACCOUNTS:
            return (
                "These records are linked to different user accounts. Merging will "
                "only transfer relationships, not the user account."
            )
        if self.code is WarningCode.DIFFERENT_VENUE:
            return f'Events have different venues: "{self.primary_value}" vs "{self.duplicate_value}"'
        if self.code is WarningCode.DIFFERENT_PROMOTER:
            return f'Events have different promoters: "{self.primary_value}" vs "{self.duplicate_value}"'
        return "Primary and duplicate are the same record"

    @property
    def blocking(self) -> bool:
        return self.code is WarningCode.SAME_ENTITY

    def to_dict(self) -> dict:
        data = {"code": self.code.value, "message": self.message}
        if self.relationship is not None:
            data["relationship"] = self.relationship
        if self.count is not None:
            data["count"] = self.count
        if self.field is not None:
            data["field"] = self.field
        return data


# ---------------------------------------------------------------------------
# Finder results
# ---------------------------------------------------------------------------

@dataclass
class DuplicatePair:
    entity1: dict
    entity2: dict
    similarity: float
    matched_fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "entity1": self.entity1,
            "entity2": self.entity2,
            "similarity": self.similarity,
            "matchedFields": list(self.matched_fields),
        }


@dataclass
class DuplicateGroup:
    """Entities transitively linked by above-threshold pairs."""
    entities: list[dict]
    highest_similarity: float

    def to_dict(self) -> dict:
        return {"entities": self.entities, "highestSimilarity": self.highest_similarity}


@dataclass
class FindDuplicatesResponse:
    kind: EntityKind
    threshold: float
    duplicates: list[DuplicatePair]
    total_entities: int
    groups: Optional[list[DuplicateGroup]] = None

    def to_dict(self) -> dict:
        data = {
            "type": self.kind.value,
            "threshold": self.threshold,
            "duplicates": [p.to_dict() for p in self.duplicates],
            "totalEntities": self.total_entities,
        }
        if self.groups is not None:
            data["groups"] = [g.to_dict() for g in self.groups]
        return data


# ---------------------------------------------------------------------------
# Merge results
# ---------------------------------------------------------------------------

@dataclass
class MergePreview:
    primary: dict
    duplicate: dict
    relationships_to_transfer: RelationshipCounts
    warnings: list[MergeWarning] = field(default_factory=list)
    can_merge: bool = True

    def to_dict(self) -> dict:
        return {
            "primary": self.primary,
            "duplicate": self.duplicate,
            "relationshipsToTransfer": self.relationships_to_transfer.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
            "canMerge": self.can_merge,
        }


@dataclass
class MergeResult:
    merged_entity: dict
    transferred_relationships: RelationshipCounts
    deleted_id: str
    # True when a previous attempt had already removed the duplicate
    already_merged: bool = False

    def to_dict(self) -> dict:
        return {
            "success": True,
            "mergedEntity": self.merged_entity,
            "transferredRelationships": self.transferred_relationships.to_dict(),
            "deletedId": self.deleted_id,
            "alreadyMerged": self.already_merged,
        }
