"""
Duplicate finder: scores every unordered pair within a bounded review scope.

O(n^2) over the scope. The scope is an administrative review context capped
by settings.duplicate_max_entities, never a hot path. The async scan hands
control back to the event loop after each row, so other requests keep being
served and a caller's timeout can cancel it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional, Sequence

from services.listings.config import settings
from services.listings.duplicates.relationships import relationships_for
from services.listings.duplicates.repository import EntityRepository
from services.listings.duplicates.similarity import score
from services.listings.duplicates.types import (
    DuplicateGroup,
    DuplicatePair,
    EntityKind,
    FindDuplicatesResponse,
)

logger = logging.getLogger(__name__)


class UnionFind:
    """Disjoint set over entity ids with path compression and union by rank."""

    def __init__(self) -> None:
        self.parent: dict[str, str] = {}
        self.rank: dict[str, int] = {}

    def find(self, x: str) -> str:
        if x not in self.parent:
            self.parent[x] = x
            self.rank[x] = 0
        if self.parent[x] != x:
            self.parent[x] = self.find(self.parent[x])
        return self.parent[x]

    def union(self, x: str, y: str) -> None:
        root_x, root_y = self.find(x), self.find(y)
        if root_x == root_y:
            return
        if self.rank[root_x] < self.rank[root_y]:
            root_x, root_y = root_y, root_x
        self.parent[root_y] = root_x
        if self.rank[root_x] == self.rank[root_y]:
            self.rank[root_x] += 1


def _created_ts(entity: dict) -> float:
    created = entity.get("createdAt")
    if isinstance(created, datetime):
        return created.timestamp()
    return float("-inf")


def _pair_sort_key(pair: DuplicatePair) -> tuple:
    """Similarity descending, then the pair holding the newest entity first."""
    newest = max(_created_ts(pair.entity1), _created_ts(pair.entity2))
    ids = tuple(sorted((str(pair.entity1["id"]), str(pair.entity2["id"]))))
    return (-pair.similarity, -newest, ids)


def _row_pairs(
    kind: EntityKind,
    entities: Sequence[dict],
    i: int,
    threshold: float,
) -> list[DuplicatePair]:
    """Pairs of entities[i] with every later entity that reach the threshold."""
    pairs = []
    for j in range(i + 1, len(entities)):
        result = score(kind, entities[i], entities[j])
        if result.similarity >= threshold:
            pairs.append(DuplicatePair(
                entity1=entities[i],
                entity2=entities[j],
                similarity=result.similarity,
                matched_fields=list(result.matched_fields),
            ))
    return pairs


def find_duplicate_pairs(
    kind: EntityKind,
    entities: Sequence[dict],
    threshold: float,
) -> list[DuplicatePair]:
    """Every unordered pair with similarity >= threshold, best first."""
    pairs: list[DuplicatePair] = []
    for i in range(len(entities)):
        pairs.extend(_row_pairs(kind, entities, i, threshold))
    pairs.sort(key=_pair_sort_key)
    return pairs


async def scan_duplicate_pairs(
    kind: EntityKind,
    entities: Sequence[dict],
    threshold: float,
) -> list[DuplicatePair]:
    """find_duplicate_pairs, yielding to the event loop between rows."""
    pairs: list[DuplicatePair] = []
    for i in range(len(entities)):
        pairs.extend(_row_pairs(kind, entities, i, threshold))
        await asyncio.sleep(0)
    pairs.sort(key=_pair_sort_key)
    return pairs


def group_duplicate_pairs(pairs: Sequence[DuplicatePair]) -> list[DuplicateGroup]:
    """
    Merge pairs that share an entity into groups, so three records that all
    look alike surface as one group instead of three pairs.
    """
    uf = UnionFind()
    by_id: dict[str, dict] = {}
    for pair in pairs:
        id1, id2 = str(pair.entity1["id"]), str(pair.entity2["id"])
        by_id.setdefault(id1, pair.entity1)
        by_id.setdefault(id2, pair.entity2)
        uf.union(id1, id2)

    members: dict[str, list[str]] = {}
    highest: dict[str, float] = {}
    # by_id preserves first appearance, i.e. best pair first
    for entity_id in by_id:
        members.setdefault(uf.find(entity_id), []).append(entity_id)
    for pair in pairs:
        root = uf.find(str(pair.entity1["id"]))
        highest[root] = max(highest.get(root, 0.0), pair.similarity)

    groups = [
        DuplicateGroup(
            entities=[by_id[entity_id] for entity_id in ids],
            highest_similarity=highest[root],
        )
        for root, ids in members.items()
    ]
    groups.sort(key=lambda g: -g.highest_similarity)
    return groups


class DuplicateFinder:
    """
    Usage:
        finder = DuplicateFinder(repo)
        response = await finder.find(EntityKind.VENUES, threshold=0.8, group=True)

    Assumes kind and threshold were validated by the caller.
    """

    def __init__(self, repository: EntityRepository, *, max_entities: Optional[int] = None):
        self.repository = repository
        self.max_entities = max_entities or settings.duplicate_max_entities

    async def find(
        self,
        kind: EntityKind,
        threshold: float = 0.7,
        *,
        ids: Optional[Sequence[str]] = None,
        group: bool = False,
    ) -> FindDuplicatesResponse:
        entities = await self.repository.list_entities(kind, limit=self.max_entities, ids=ids)
        entities = await self._with_counts(kind, entities)

        pairs = await scan_duplicate_pairs(kind, entities, threshold)
        groups = group_duplicate_pairs(pairs) if group else None

        logger.info(
            "Duplicate scan %s: %d entities, %d pairs >= %.2f",
            kind.value, len(entities), len(pairs), threshold,
        )
        return FindDuplicatesResponse(
            kind=kind,
            threshold=threshold,
            duplicates=pairs,
            total_entities=len(entities),
            groups=groups,
        )

    async def _with_counts(self, kind: EntityKind, entities: list[dict]) -> list[dict]:
        """Annotate each entity with _count per relationship, one grouped query each."""
        counts_by_spec = {
            spec.name: await self.repository.count_related_grouped(spec)
            for spec in relationships_for(kind)
        }
        return [
            {
                **entity,
                "_count": {
                    name: counts.get(entity["id"], 0)
                    for name, counts in counts_by_spec.items()
                },
            }
            for entity in entities
        ]
