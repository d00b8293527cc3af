"""
Entry points for the admin layer: find duplicates, preview a merge, execute a merge.

Validates caller input, enforces the per-call compute budget and records
failures in the persistent error log. The finder, planner and executor below
assume input has already been checked here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence

from services.listings.config import settings
from services.listings.duplicates.errors import (
    DuplicateEngineError,
    EntityNotFoundError,
    InvalidInputError,
    MergeContext,
    MergeError,
    MergeStep,
    MergeTimeoutError,
)
from services.listings.duplicates.executor import MergeExecutor, MergeProgress
from services.listings.duplicates.finder import DuplicateFinder
from services.listings.duplicates.planner import MergePlanner
from services.listings.duplicates.repository import EntityRepository
from services.listings.duplicates.types import (
    EntityKind,
    FindDuplicatesResponse,
    MergePreview,
    MergeResult,
)
from services.listings.error_log import ErrorLogger

logger = logging.getLogger(__name__)


def validate_threshold(threshold: Optional[float]) -> float:
    if threshold is None:
        return settings.duplicate_default_threshold
    try:
        value = float(threshold)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Threshold must be a number, got {threshold!r}") from None
    if not settings.duplicate_min_threshold <= value <= settings.duplicate_max_threshold:
        raise InvalidInputError(
            f"Threshold must be between {settings.duplicate_min_threshold} "
            f"and {settings.duplicate_max_threshold}, got {value}"
        )
    return value


def validate_pair(primary_id: Any, duplicate_id: Any) -> tuple[str, str]:
    if not primary_id or not duplicate_id:
        raise InvalidInputError("Both primaryId and duplicateId are required")
    if not isinstance(primary_id, str) or not isinstance(duplicate_id, str):
        raise InvalidInputError("primaryId and duplicateId must be strings")
    if primary_id == duplicate_id:
        raise InvalidInputError("Cannot merge an entity with itself")
    return primary_id, duplicate_id


class DuplicateService:
    """
    Usage:
        async with session_factory() as session:
            service = DuplicateService(
                SqlEntityRepository(session),
                error_logger=ErrorLogger(session),
            )
            preview = await service.preview_merge("venues", primary_id, duplicate_id)
            if preview.can_merge:
                result = await service.execute_merge("venues", primary_id, duplicate_id)
    """

    def __init__(
        self,
        repository: EntityRepository,
        *,
        error_logger: Optional[ErrorLogger] = None,
        timeout_s: Optional[float] = None,
        max_entities: Optional[int] = None,
    ):
        self.repository = repository
        self.error_logger = error_logger or ErrorLogger()
        self.timeout_s = timeout_s or settings.merge_timeout_s
        self.finder = DuplicateFinder(repository, max_entities=max_entities)
        self.planner = MergePlanner(repository)
        self.executor = MergeExecutor(repository)

    async def find_duplicates(
        self,
        kind: Any,
        threshold: Optional[float] = None,
        *,
        ids: Optional[Sequence[str]] = None,
        group: bool = False,
    ) -> FindDuplicatesResponse:
        kind = EntityKind.parse(kind)
        threshold = validate_threshold(threshold)
        if ids is not None:
            ids = [str(i) for i in ids if i]
            if len(ids) < 2:
                raise InvalidInputError("An id scope needs at least two ids")
        return await self.finder.find(kind, threshold, ids=ids, group=group)

    async def preview_merge(self, kind: Any, primary_id: Any, duplicate_id: Any) -> MergePreview:
        kind = EntityKind.parse(kind)
        primary_id, duplicate_id = validate_pair(primary_id, duplicate_id)
        progress = MergeProgress(kind, primary_id, duplicate_id, step=MergeStep.PREVIEW)
        return await self._run(
            self.planner.preview(kind, primary_id, duplicate_id),
            progress,
            source="duplicates.preview",
        )

    async def execute_merge(self, kind: Any, primary_id: Any, duplicate_id: Any) -> MergeResult:
        kind = EntityKind.parse(kind)
        primary_id, duplicate_id = validate_pair(primary_id, duplicate_id)
        progress = MergeProgress(kind, primary_id, duplicate_id)
        return await self._run(
            self.executor.execute(kind, primary_id, duplicate_id, progress=progress),
            progress,
            source="duplicates.merge",
        )

    async def _run(self, operation, progress: MergeProgress, *, source: str):
        try:
            return await asyncio.wait_for(operation, timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            error = MergeTimeoutError(progress.context(), e)
            logger.warning("%s", error)
            await self._record(error, progress.context(), source, level="warn")
            raise error from e
        except (InvalidInputError, EntityNotFoundError):
            raise
        except MergeTimeoutError as e:
            await self._record(e, e.context, source, level="warn")
            raise
        except MergeError as e:
            await self._record(e, e.context, source)
            raise
        except DuplicateEngineError:
            raise
        except Exception as e:
            logger.exception("Unexpected failure in %s (%s)", source, progress.context())
            await self._record(e, progress.context(), source)
            raise

    async def _record(
        self,
        error: BaseException,
        context: MergeContext,
        source: str,
        level: str = "error",
    ) -> None:
        # The error logger may share the repository's session and commits
        # its entry; nothing the failed operation left pending may go with it.
        try:
            await self.repository.rollback()
        except Exception:
            logger.exception("Rollback before recording %s failure failed", source)
        await self.error_logger.log(
            f"{source} failed",
            error=error,
            source=source,
            context=context.to_dict(),
            level=level,
        )
