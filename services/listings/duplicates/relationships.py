"""
Relationship edges that reference a mergeable entity, and the shared logic
that decides which of a duplicate's rows move to the primary.

The planner and the executor both go through build_transfer_plan(), so the
counts a preview promises are exactly the rows an execute moves (absent
concurrent writes between the two calls).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from services.listings.duplicates.errors import MergeStep
from services.listings.duplicates.types import EntityKind, RelationshipCounts

if TYPE_CHECKING:
    from services.listings.duplicates.repository import EntityRepository


@dataclass(frozen=True)
class RelationshipSpec:
    """
    One relationship table as seen from a single entity kind.

    Rows reference the entity through fk_column. Within the rows that share
    an fk value, natural_key must be unique; an empty natural_key means rows
    can always move (events have no per-venue uniqueness).
    """
    name: str                  # wire name: events | eventVendors | favorites
    counts_attr: str           # RelationshipCounts attribute
    table: str
    fk_column: str
    step: MergeStep
    natural_key: tuple[str, ...] = ()
    scope: tuple[tuple[str, str], ...] = ()

    def key_of(self, row: dict) -> tuple:
        return tuple(row.get(col) for col in self.natural_key)

    @property
    def polymorphic(self) -> bool:
        """Scoped by a type column, so no foreign key cleans up after a deleted owner."""
        return bool(self.scope)


def _events_spec(fk_column: str) -> RelationshipSpec:
    return RelationshipSpec(
        name="events",
        counts_attr="events",
        table="events",
        fk_column=fk_column,
        step=MergeStep.TRANSFER_EVENTS,
    )


def _applications_spec(fk_column: str, other_column: str) -> RelationshipSpec:
    return RelationshipSpec(
        name="eventVendors",
        counts_attr="event_vendors",
        table="event_vendors",
        fk_column=fk_column,
        step=MergeStep.TRANSFER_EVENT_VENDORS,
        natural_key=(other_column,),
    )


def _favorites_spec(kind: EntityKind) -> RelationshipSpec:
    return RelationshipSpec(
        name="favorites",
        counts_attr="favorites",
        table="user_favorites",
        fk_column="favoritableId",
        step=MergeStep.TRANSFER_FAVORITES,
        natural_key=("userId",),
        scope=(("favoritableType", kind.favoritable_type),),
    )


RELATIONSHIPS: dict[EntityKind, tuple[RelationshipSpec, ...]] = {
    EntityKind.VENUES: (
        _events_spec("venueId"),
        _favorites_spec(EntityKind.VENUES),
    ),
    EntityKind.PROMOTERS: (
        _events_spec("promoterId"),
        _favorites_spec(EntityKind.PROMOTERS),
    ),
    EntityKind.VENDORS: (
        _applications_spec("vendorId", "eventId"),
        _favorites_spec(EntityKind.VENDORS),
    ),
    EntityKind.EVENTS: (
        _applications_spec("eventId", "vendorId"),
        _favorites_spec(EntityKind.EVENTS),
    ),
}


def relationships_for(kind: EntityKind) -> tuple[RelationshipSpec, ...]:
    return RELATIONSHIPS[kind]


def empty_counts(kind: EntityKind) -> RelationshipCounts:
    """Zeroed counts with exactly the relationships this kind participates in."""
    counts = RelationshipCounts()
    for spec in relationships_for(kind):
        setattr(counts, spec.counts_attr, 0)
    return counts


@dataclass
class TransferPlan:
    spec: RelationshipSpec
    primary_rows: list[dict] = field(default_factory=list)
    movable: list[dict] = field(default_factory=list)
    # Duplicate-side rows whose natural key already exists on the primary
    discarded: list[dict] = field(default_factory=list)

    @property
    def movable_ids(self) -> list[str]:
        return [row["id"] for row in self.movable]

    @property
    def discarded_ids(self) -> list[str]:
        return [row["id"] for row in self.discarded]


def partition_rows(
    spec: RelationshipSpec,
    primary_rows: list[dict],
    duplicate_rows: list[dict],
) -> TransferPlan:
    """
    Split the duplicate's rows into those that can be repointed and those
    that would collide with a primary row under the natural key.

    Rows are visited in id order so two duplicate-side rows sharing a key
    (possible where the store does not enforce uniqueness) resolve the same
    way on every run: the first moves, the rest are discarded.
    """
    plan = TransferPlan(spec=spec, primary_rows=list(primary_rows))
    if not spec.natural_key:
        plan.movable = sorted(duplicate_rows, key=lambda r: str(r["id"]))
        return plan

    taken = {spec.key_of(row) for row in primary_rows}
    for row in sorted(duplicate_rows, key=lambda r: str(r["id"])):
        key = spec.key_of(row)
        if key in taken:
            plan.discarded.append(row)
        else:
            taken.add(key)
            plan.movable.append(row)
    return plan


async def build_transfer_plan(
    repository: EntityRepository,
    spec: RelationshipSpec,
    primary_id: str,
    duplicate_id: str,
) -> TransferPlan:
    primary_rows = await repository.list_related(spec, primary_id)
    duplicate_rows = await repository.list_related(spec, duplicate_id)
    return partition_rows(spec, primary_rows, duplicate_rows)
