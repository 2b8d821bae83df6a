# alert_table.py - In-memory filter/sort engine for the IDS/IPS alert table
# Pure and synchronous: every call derives a fresh list, the loaded set is never mutated.

from __future__ import annotations
from dataclasses import dataclass, replace, field
from typing import Any, Callable, Dict, List, Sequence

from core.models import IdsAlert, SEVERITIES

ALL_SEVERITIES = "all"

SEVERITY_RANK = {"high": 0, "medium": 1, "low": 2, "info": 3}
UNKNOWN_SEVERITY_RANK = 4

# Wire field name -> sort key
SORT_KEYS: Dict[str, Callable[[IdsAlert], Any]] = {
    "timestamp": lambda a: a.timestamp or "",
    "severity": lambda a: SEVERITY_RANK.get(a.severity, UNKNOWN_SEVERITY_RANK),
    "category": lambda a: a.category or "",
    "srcIp": lambda a: a.src_ip or "",
    "dstIp": lambda a: a.dst_ip or "",
    "dstPort": lambda a: a.dst_port or 0,
}

SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class TableQuery:
    search: str = ""
    severity: str = ALL_SEVERITIES
    sort_field: str = "timestamp"
    sort_dir: str = "desc"

    def __post_init__(self):
        if self.severity != ALL_SEVERITIES and self.severity not in SEVERITIES:
            raise ValueError(f"Unknown severity filter: {self.severity!r}")
        if self.sort_field not in SORT_KEYS:
            raise ValueError(f"Unknown sort field: {self.sort_field!r}")
        if self.sort_dir not in SORT_DIRECTIONS:
            raise ValueError(f"Unknown sort direction: {self.sort_dir!r}")


@dataclass(frozen=True)
class AlertView:
    rows: List[IdsAlert]
    counts: Dict[str, int]
    total: int
    query: TableQuery = field(default_factory=TableQuery)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alerts": [a.to_dict() for a in self.rows],
            "counts": dict(self.counts),
            "total": self.total,
            "shown": len(self.rows),
        }


def toggle_sort(query: TableQuery, sort_field: str) -> TableQuery:
    """Same field flips direction; a new field starts descending."""
    if sort_field not in SORT_KEYS:
        raise ValueError(f"Unknown sort field: {sort_field!r}")
    if query.sort_field == sort_field:
        return replace(query, sort_dir="asc" if query.sort_dir == "desc" else "desc")
    return replace(query, sort_field=sort_field, sort_dir="desc")


def matches_search(alert: IdsAlert, search: str) -> bool:
    if not search:
        return True
    q = search.lower()
    return any(
        q in (value or "").lower()
        for value in (alert.signature, alert.category, alert.src_ip, alert.dst_ip)
    )


def apply_query(alerts: Sequence[IdsAlert], query: TableQuery) -> List[IdsAlert]:
    result = [a for a in alerts if matches_search(a, query.search)]
    if query.severity != ALL_SEVERITIES:
        result = [a for a in result if a.severity == query.severity]
    # sorted() is stable in both directions, so ties keep load order
    return sorted(result, key=SORT_KEYS[query.sort_field], reverse=query.sort_dir == "desc")


def severity_counts(alerts: Sequence[IdsAlert]) -> Dict[str, int]:
    """Per-severity counts over the full loaded set, ignoring any filter."""
    counts = {sev: 0 for sev in SEVERITIES}
    for a in alerts:
        if a.severity in counts:
            counts[a.severity] += 1
    return counts


def build_view(alerts: Sequence[IdsAlert], query: TableQuery, total: int = None) -> AlertView:
    return AlertView(
        rows=apply_query(alerts, query),
        counts=severity_counts(alerts),
        total=len(alerts) if total is None else total,
        query=query,
    )
