"""
Merge executor: moves a duplicate's relationships onto the primary, folds the
duplicate's fields into the primary, and deletes the duplicate.

Every step is idempotent so a merge interrupted at any point can simply be
run again:
  - discarded rows are deleted by id (already gone is a no-op)
  - repoints are guarded on the fk still pointing at the duplicate
  - the fold deletes the duplicate and updates the primary in one
    transaction, and reports whether the duplicate was still there
A duplicate that is already gone when execution starts means a previous
attempt finished; the current primary is returned with already_merged set.
Rows in relationships with no foreign key behind them (favorites) can still
reference the gone duplicate if they were written during that attempt, so
those are transferred once more before returning.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from services.listings.duplicates.errors import (
    DuplicateEngineError,
    EntityNotFoundError,
    InvalidInputError,
    MergeConflictError,
    MergeContext,
    MergeStep,
    MergeStepError,
    MergeTimeoutError,
    is_statement_timeout,
)
from services.listings.duplicates.fold import plan_fold
from services.listings.duplicates.relationships import (
    RelationshipSpec,
    build_transfer_plan,
    empty_counts,
    relationships_for,
)
from services.listings.duplicates.repository import EntityRepository
from services.listings.duplicates.types import EntityKind, MergeResult, RelationshipCounts

logger = logging.getLogger(__name__)


@dataclass
class MergeProgress:
    """Mutable marker of the step in flight, readable after a timeout."""
    kind: EntityKind
    primary_id: str
    duplicate_id: str
    step: MergeStep = MergeStep.VALIDATE

    def context(self) -> MergeContext:
        return MergeContext(
            kind=self.kind.value,
            primary_id=self.primary_id,
            duplicate_id=self.duplicate_id,
            step=self.step,
        )


@asynccontextmanager
async def merge_step(progress: MergeProgress, step: MergeStep):
    """Record the running step and translate store failures into MergeErrors."""
    progress.step = step
    try:
        yield
    except DuplicateEngineError:
        raise
    except IntegrityError as e:
        raise MergeConflictError(progress.context(), e) from e
    except Exception as e:
        if is_statement_timeout(e):
            raise MergeTimeoutError(progress.context(), e) from e
        raise MergeStepError(progress.context(), e) from e


class MergeExecutor:

    def __init__(self, repository: EntityRepository):
        self.repository = repository

    async def execute(
        self,
        kind: EntityKind,
        primary_id: str,
        duplicate_id: str,
        progress: Optional[MergeProgress] = None,
    ) -> MergeResult:
        if primary_id == duplicate_id:
            raise InvalidInputError("Cannot merge an entity with itself")

        progress = progress or MergeProgress(kind, primary_id, duplicate_id)
        repo = self.repository

        async with merge_step(progress, MergeStep.VALIDATE):
            primary = await repo.get_entity(kind, primary_id)
            if primary is None:
                raise EntityNotFoundError(kind.value, primary_id)
            duplicate = await repo.get_entity(kind, duplicate_id)

        if duplicate is None:
            logger.info(
                "Merge %s %s -> %s: duplicate already gone, sweeping unkeyed references",
                kind.value, duplicate_id[:8], primary_id[:8],
            )
            swept = empty_counts(kind)
            for spec in relationships_for(kind):
                if spec.polymorphic:
                    await self._transfer(kind, spec, primary_id, duplicate_id, progress, swept)
            merged = await self._reload(kind, primary_id, progress)
            progress.step = MergeStep.DONE
            return MergeResult(
                merged_entity=merged,
                transferred_relationships=swept,
                deleted_id=duplicate_id,
                already_merged=True,
            )

        transferred = empty_counts(kind)

        for spec in relationships_for(kind):
            await self._transfer(kind, spec, primary_id, duplicate_id, progress, transferred)

        async with merge_step(progress, MergeStep.FOLD):
            fold = plan_fold(kind, primary, duplicate)
            folded = await repo.fold_entity(kind, primary_id, duplicate_id, fold.values)

        merged = await self._reload(kind, primary_id, progress)
        progress.step = MergeStep.DONE

        logger.info(
            "Merged %s %s into %s: transferred %s",
            kind.value, duplicate_id[:8], primary_id[:8], transferred.to_dict(),
        )
        return MergeResult(
            merged_entity=merged,
            transferred_relationships=transferred,
            deleted_id=duplicate_id,
            already_merged=not folded,
        )

    async def _transfer(
        self,
        kind: EntityKind,
        spec: RelationshipSpec,
        primary_id: str,
        duplicate_id: str,
        progress: MergeProgress,
        transferred: RelationshipCounts,
    ) -> None:
        repo = self.repository
        async with merge_step(progress, spec.step):
            plan = await build_transfer_plan(repo, spec, primary_id, duplicate_id)
            if plan.discarded:
                removed = await repo.delete_related(spec, plan.discarded_ids)
                logger.warning(
                    "Merge %s %s -> %s: discarded %d %s row(s) already on primary",
                    kind.value, duplicate_id[:8], primary_id[:8], removed, spec.name,
                )
            moved = await repo.repoint_related(spec, plan.movable_ids, duplicate_id, primary_id)
            transferred.add(spec.counts_attr, moved)

    async def _reload(self, kind: EntityKind, primary_id: str, progress: MergeProgress) -> dict:
        async with merge_step(progress, MergeStep.RELOAD):
            entity = await self.repository.get_entity(kind, primary_id)
            if entity is None:
                raise EntityNotFoundError(kind.value, primary_id)
            counts = {
                spec.name: await self.repository.count_related(spec, primary_id)
                for spec in relationships_for(kind)
            }
        return {**entity, "_count": counts}
