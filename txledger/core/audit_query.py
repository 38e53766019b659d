"""Audit Query Rules: pure filtering, ordering and pagination of audit records.

Invariants:
    - Filters combine with AND; an unset filter matches everything
    - Dict entity ids compare by canonical JSON (sorted keys), strings compare as-is
    - Ordering is stable; pagination applied after ordering (offset first, then limit)
"""

import json
from collections.abc import Iterable
from typing import Any

from txledger.core.domain_types import AuditOrderField, OrderDirection
from txledger.schemas.audit import AuditQuery, AuditRecord


def canonical_entity_id(entity_id: str | dict[str, Any] | None) -> str | None:
    """Single string form of an entity id, as stored in the entity_id column."""
    if entity_id is None or isinstance(entity_id, str):
        return entity_id
    return json.dumps(entity_id, sort_keys=True, separators=(",", ":"), default=str)


def parse_entity_id(raw: str | None) -> str | dict[str, Any] | None:
    """Inverse of canonical_entity_id for values read back from storage."""
    if raw is None:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw
    return parsed if isinstance(parsed, dict) else raw


def matches(record: AuditRecord, query: AuditQuery) -> bool:
    if query.type is not None:
        types = [query.type] if isinstance(query.type, str) else query.type
        if record.type not in types:
            return False
    if query.entity_id is not None:
        if canonical_entity_id(record.entity_id) != canonical_entity_id(query.entity_id):
            return False
    if query.table is not None and record.table != query.table:
        return False
    if query.actor_id is not None:
        if record.actor is None or record.actor.id != query.actor_id:
            return False
    if query.date_from is not None and record.timestamp < query.date_from:
        return False
    if query.date_to is not None and record.timestamp > query.date_to:
        return False
    return True


def apply_query(records: Iterable[AuditRecord], query: AuditQuery) -> list[AuditRecord]:
    """Filter, order and paginate records according to query."""
    selected = [r for r in records if matches(r, query)]
    if query.order_by == AuditOrderField.TYPE:
        key = lambda r: r.type  # noqa: E731
    else:
        key = lambda r: r.timestamp  # noqa: E731
    selected.sort(key=key, reverse=query.order_direction == OrderDirection.DESC)

    start = query.offset or 0
    end = start + query.limit if query.limit is not None else None
    return selected[start:end]


def count_matching(records: Iterable[AuditRecord], query: AuditQuery) -> int:
    return sum(1 for r in records if matches(r, query))
