#!/usr/bin/env python3
"""
Entity Collection - merges tracking requests into one deduplicated search set.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from ...shared.types.results import EntityKind, TrackedEntity, TrackingRequest

logger = logging.getLogger(__name__)


@dataclass
class EntitySet:
    """Deduplicated companies and people plus who tracks each of them."""
    companies: List[TrackedEntity] = field(default_factory=list)
    people: List[TrackedEntity] = field(default_factory=list)
    owners_by_key: Dict[str, List[str]] = field(default_factory=dict)
    all_owners: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.companies and not self.people

    @property
    def entities(self) -> List[TrackedEntity]:
        return self.companies + self.people

    @property
    def names(self) -> List[str]:
        return [entity.name for entity in self.entities]

    def owners_for(self, entity: TrackedEntity) -> List[str]:
        return list(self.owners_by_key.get(_owner_key(entity.kind, entity.match_key), []))

    def find(self, name: Optional[str], kind: EntityKind) -> Optional[TrackedEntity]:
        """Tracked entity of ``kind`` whose name matches ``name`` case-insensitively."""
        if not name:
            return None
        candidates = self.companies if kind == EntityKind.COMPANY else self.people
        key = TrackedEntity(name=name, kind=kind).match_key
        for entity in candidates:
            if entity.match_key == key:
                return entity
        return None


def _owner_key(kind: EntityKind, match_key: str) -> str:
    return f"{kind.value}:{match_key}"


def _merge(existing: TrackedEntity, incoming: TrackedEntity) -> TrackedEntity:
    """Fill identifiers the first occurrence lacked; display casing never changes."""
    updates = {}
    for name in ('ticker', 'filing_id', 'title'):
        if not getattr(existing, name) and getattr(incoming, name):
            updates[name] = getattr(incoming, name)
    return replace(existing, **updates) if updates else existing


def collect_entities(requests: List[TrackingRequest]) -> EntitySet:
    """
    Merge every tracking request into a single entity set.

    Names are deduplicated case-insensitively per kind; the first-seen spelling
    is kept for display. Every owner that names an entity is recorded.
    """
    companies: Dict[str, TrackedEntity] = {}
    people: Dict[str, TrackedEntity] = {}
    owners_by_key: Dict[str, List[str]] = {}
    all_owners: List[str] = []

    for request in requests:
        if not isinstance(request, TrackingRequest):
            raise TypeError(f"Expected TrackingRequest, got {type(request).__name__}")

        owner = request.owner.strip()
        if owner and owner not in all_owners:
            all_owners.append(owner)

        for bucket, entities in ((companies, request.companies), (people, request.people)):
            for entity in entities:
                key = entity.match_key
                if not key:
                    continue
                bucket[key] = _merge(bucket[key], entity) if key in bucket else entity

                owners = owners_by_key.setdefault(_owner_key(entity.kind, key), [])
                if owner and owner not in owners:
                    owners.append(owner)

    entity_set = EntitySet(
        companies=list(companies.values()),
        people=list(people.values()),
        owners_by_key=owners_by_key,
        all_owners=all_owners
    )
    logger.info(f"Collected {len(entity_set.companies)} companies and {len(entity_set.people)} people "
                f"from {len(requests)} tracking requests")
    return entity_set
