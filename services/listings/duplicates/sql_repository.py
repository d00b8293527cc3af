"""
SQLAlchemy implementation of EntityRepository over an AsyncSession.

Each mutating call commits before returning, so a merge interrupted between
calls keeps everything already done. A call interrupted part-way, including
by task cancellation, rolls back so nothing it started is left pending on the
session. Statements are Core (table-level) so rows come back as plain column
dicts.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import Table, and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from services.listings.db.models import Base, Event, Promoter, Vendor, Venue
from services.listings.duplicates.relationships import RelationshipSpec
from services.listings.duplicates.types import EntityKind

logger = logging.getLogger(__name__)

KIND_MODELS = {
    EntityKind.VENUES: Venue,
    EntityKind.EVENTS: Event,
    EntityKind.VENDORS: Vendor,
    EntityKind.PROMOTERS: Promoter,
}


def entity_table(kind: EntityKind) -> Table:
    return KIND_MODELS[kind].__table__


def related_table(spec: RelationshipSpec) -> Table:
    return Base.metadata.tables[spec.table]


class SqlEntityRepository:
    """
    Usage:
        async with session_factory() as session:
            repo = SqlEntityRepository(session)
            preview = await MergePlanner(repo).preview(EntityKind.VENUES, a, b)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_entity(self, kind: EntityKind, entity_id: str) -> Optional[dict]:
        table = entity_table(kind)
        result = await self.session.execute(select(table).where(table.c.id == entity_id))
        row = result.mappings().first()
        return dict(row) if row is not None else None

    async def list_entities(
        self,
        kind: EntityKind,
        *,
        limit: int,
        ids: Optional[Sequence[str]] = None,
    ) -> list[dict]:
        table = entity_table(kind)
        stmt = select(table)
        if ids is not None:
            stmt = stmt.where(table.c.id.in_(list(ids)))
        stmt = stmt.order_by(table.c[kind.name_field], table.c.id).limit(limit)
        result = await self.session.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def count_related_grouped(self, spec: RelationshipSpec) -> dict[str, int]:
        table = related_table(spec)
        fk = table.c[spec.fk_column]
        stmt = select(fk, func.count()).group_by(fk)
        scope = self._scope_clauses(table, spec)
        if scope:
            stmt = stmt.where(and_(*scope))
        result = await self.session.execute(stmt)
        return {owner_id: count for owner_id, count in result.all() if owner_id is not None}

    async def list_related(self, spec: RelationshipSpec, entity_id: str) -> list[dict]:
        table = related_table(spec)
        stmt = (
            select(table)
            .where(self._related_filter(table, spec, entity_id))
            .order_by(table.c.id)
        )
        result = await self.session.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def count_related(self, spec: RelationshipSpec, entity_id: str) -> int:
        table = related_table(spec)
        stmt = (
            select(func.count())
            .select_from(table)
            .where(self._related_filter(table, spec, entity_id))
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    # ------------------------------------------------------------------
    # Writes (one transaction each)
    # ------------------------------------------------------------------

    async def delete_related(self, spec: RelationshipSpec, row_ids: Sequence[str]) -> int:
        if not row_ids:
            return 0
        table = related_table(spec)
        stmt = delete(table).where(table.c.id.in_(list(row_ids)))
        return await self._write(stmt)

    async def repoint_related(
        self,
        spec: RelationshipSpec,
        row_ids: Sequence[str],
        from_id: str,
        to_id: str,
    ) -> int:
        if not row_ids:
            return 0
        table = related_table(spec)
        values = {spec.fk_column: to_id}
        if "updatedAt" in table.c:
            values["updatedAt"] = datetime.now(timezone.utc)
        # The fk guard makes a repeated call a no-op for rows already moved
        stmt = (
            update(table)
            .where(
                table.c.id.in_(list(row_ids)),
                self._related_filter(table, spec, from_id),
            )
            .values(values)
        )
        return await self._write(stmt)

    async def fold_entity(
        self,
        kind: EntityKind,
        primary_id: str,
        duplicate_id: str,
        values: dict,
    ) -> bool:
        table = entity_table(kind)
        try:
            # Delete first: unique columns copied from the duplicate
            # (googlePlaceId) must not coexist on two rows.
            deleted = await self.session.execute(
                delete(table).where(table.c.id == duplicate_id)
            )
            if not deleted.rowcount:
                await self.session.rollback()
                logger.debug("Fold skipped: %s %s already deleted", kind.value, duplicate_id[:8])
                return False
            if values:
                await self.session.execute(
                    update(table)
                    .where(table.c.id == primary_id)
                    .values({**values, "updatedAt": datetime.now(timezone.utc)})
                )
            await self.session.commit()
        except BaseException:
            # Cancellation lands here too: the delete must not outlive the update
            await self.session.rollback()
            raise
        return True

    async def rollback(self) -> None:
        await self.session.rollback()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _write(self, stmt) -> int:
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except BaseException:
            await self.session.rollback()
            raise
        return result.rowcount or 0

    @staticmethod
    def _scope_clauses(table: Table, spec: RelationshipSpec) -> list:
        return [table.c[col] == value for col, value in spec.scope]

    def _related_filter(self, table: Table, spec: RelationshipSpec, entity_id: str):
        return and_(
            table.c[spec.fk_column] == entity_id,
            *self._scope_clauses(table, spec),
        )
