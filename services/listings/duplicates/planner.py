"""
Merge planner: read-only preview of what merging a duplicate into a primary
would do. Safe to call repeatedly and concurrently.
"""

from __future__ import annotations

import logging
from typing import Optional

from services.listings.duplicates.errors import EntityNotFoundError
from services.listings.duplicates.fold import plan_fold
from services.listings.duplicates.relationships import (
    build_transfer_plan,
    empty_counts,
    relationships_for,
)
from services.listings.duplicates.repository import EntityRepository
from services.listings.duplicates.types import (
    EntityKind,
    MergePreview,
    MergeWarning,
    RelationshipCounts,
    WarningCode,
    display_name,
)

logger = logging.getLogger(__name__)


async def load_pair(
    repository: EntityRepository,
    kind: EntityKind,
    primary_id: str,
    duplicate_id: str,
) -> tuple[dict, dict]:
    primary = await repository.get_entity(kind, primary_id)
    if primary is None:
        raise EntityNotFoundError(kind.value, primary_id)
    duplicate = await repository.get_entity(kind, duplicate_id)
    if duplicate is None:
        raise EntityNotFoundError(kind.value, duplicate_id)
    return primary, duplicate


class MergePlanner:

    def __init__(self, repository: EntityRepository):
        self.repository = repository

    async def preview(self, kind: EntityKind, primary_id: str, duplicate_id: str) -> MergePreview:
        if primary_id == duplicate_id:
            return await self._self_merge_preview(kind, primary_id)

        primary, duplicate = await load_pair(self.repository, kind, primary_id, duplicate_id)

        to_transfer = RelationshipCounts()
        primary_totals: dict[str, int] = {}
        duplicate_totals: dict[str, int] = {}
        warnings: list[MergeWarning] = []

        for spec in relationships_for(kind):
            plan = await build_transfer_plan(self.repository, spec, primary_id, duplicate_id)
            setattr(to_transfer, spec.counts_attr, len(plan.movable))
            primary_totals[spec.name] = len(plan.primary_rows)
            duplicate_totals[spec.name] = len(plan.movable) + len(plan.discarded)
            if plan.discarded:
                warnings.append(MergeWarning(
                    code=WarningCode.RELATIONSHIPS_DISCARDED,
                    relationship=spec.name,
                    count=len(plan.discarded),
                ))

        warnings.extend(await self._ownership_warnings(kind, primary, duplicate))

        fold = plan_fold(kind, primary, duplicate)
        for name in fold.conflicts:
            warnings.append(MergeWarning(
                code=WarningCode.FIELD_CONFLICT,
                field=name,
                primary_value=primary.get(name),
                duplicate_value=duplicate.get(name),
            ))

        logger.debug(
            "Preview %s %s -> %s: %s, %d warning(s)",
            kind.value, duplicate_id[:8], primary_id[:8], to_transfer.to_dict(), len(warnings),
        )
        return MergePreview(
            primary={**primary, "_count": primary_totals},
            duplicate={**duplicate, "_count": duplicate_totals},
            relationships_to_transfer=to_transfer,
            warnings=warnings,
            can_merge=not any(w.blocking for w in warnings),
        )

    async def _self_merge_preview(self, kind: EntityKind, entity_id: str) -> MergePreview:
        entity = await self.repository.get_entity(kind, entity_id)
        if entity is None:
            raise EntityNotFoundError(kind.value, entity_id)
        return MergePreview(
            primary=entity,
            duplicate=entity,
            relationships_to_transfer=empty_counts(kind),
            warnings=[MergeWarning(code=WarningCode.SAME_ENTITY)],
            can_merge=False,
        )

    async def _ownership_warnings(
        self, kind: EntityKind, primary: dict, duplicate: dict
    ) -> list[MergeWarning]:
        warnings = []

        if kind in (EntityKind.VENDORS, EntityKind.PROMOTERS):
            p_user, d_user = primary.get("userId"), duplicate.get("userId")
            if p_user and d_user and p_user != d_user:
                warnings.append(MergeWarning(code=WarningCode.DIFFERENT_USER_ACCOUNTS))

        if kind is EntityKind.EVENTS:
            for column, owner_kind, code in (
                ("promoterId", EntityKind.PROMOTERS, WarningCode.DIFFERENT_PROMOTER),
                ("venueId", EntityKind.VENUES, WarningCode.DIFFERENT_VENUE),
            ):
                p_owner, d_owner = primary.get(column), duplicate.get(column)
                if p_owner != d_owner:
                    warnings.append(MergeWarning(
                        code=code,
                        field=column,
                        primary_value=await self._owner_name(owner_kind, p_owner),
                        duplicate_value=await self._owner_name(owner_kind, d_owner),
                    ))

        return warnings

    async def _owner_name(self, kind: EntityKind, entity_id: Optional[str]) -> Optional[str]:
        if not entity_id:
            return None
        owner = await self.repository.get_entity(kind, entity_id)
        return display_name(owner, kind) if owner else None
