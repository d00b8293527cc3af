"""
Storage interface the duplicate engine is written against.

Every mutating method is its own unit of work: once it returns, its effect
is durable, and running it again with the same arguments changes nothing
further. That is what makes an interrupted merge safe to repeat.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from services.listings.duplicates.relationships import RelationshipSpec
from services.listings.duplicates.types import EntityKind


class EntityRepository(Protocol):

    async def get_entity(self, kind: EntityKind, entity_id: str) -> Optional[dict]:
        """Return the entity as a column dict, or None if it does not exist."""
        ...

    async def list_entities(
        self,
        kind: EntityKind,
        *,
        limit: int,
        ids: Optional[Sequence[str]] = None,
    ) -> list[dict]:
        """Entities of one kind ordered by display name, optionally restricted to ids."""
        ...

    async def count_related_grouped(self, spec: RelationshipSpec) -> dict[str, int]:
        """Row count per referenced entity id, for annotating finder output."""
        ...

    async def list_related(self, spec: RelationshipSpec, entity_id: str) -> list[dict]:
        """Rows of spec.table whose fk_column references entity_id (within spec.scope)."""
        ...

    async def count_related(self, spec: RelationshipSpec, entity_id: str) -> int:
        ...

    async def delete_related(self, spec: RelationshipSpec, row_ids: Sequence[str]) -> int:
        """Delete rows by id. Returns the number actually deleted."""
        ...

    async def repoint_related(
        self,
        spec: RelationshipSpec,
        row_ids: Sequence[str],
        from_id: str,
        to_id: str,
    ) -> int:
        """
        Set fk_column = to_id on the given rows that still reference from_id.
        Returns the number of rows actually updated.
        """
        ...

    async def fold_entity(
        self,
        kind: EntityKind,
        primary_id: str,
        duplicate_id: str,
        values: dict,
    ) -> bool:
        """
        In one transaction: delete the duplicate, then apply values to the primary.

        Returns False (and applies nothing) when the duplicate was already gone.
        """
        ...

    async def rollback(self) -> None:
        """Discard anything left uncommitted by an interrupted call."""
        ...
