"""event_aggregator.py

Merge normalized events from all feeds into the display working set:
dedup by id (first occurrence wins), newest first, capped.
"""

from datetime import datetime, timezone
from typing import Iterable, List

from core.models import Event
from core.timestamps import parse_instant

MAX_EVENTS = 200

_UNPARSEABLE = datetime.min.replace(tzinfo=timezone.utc)


def dedupe_by_id(events: Iterable[Event]) -> List[Event]:
    seen = set(); out = []
    for ev in events:
        if ev.id in seen:
            continue
        seen.add(ev.id)
        out.append(ev)
    return out


def _sort_key(ev: Event) -> datetime:
    return parse_instant(ev.timestamp) or _UNPARSEABLE


def aggregate_events(events: Iterable[Event], limit: int = MAX_EVENTS) -> List[Event]:
    """
    Deduplicate, sort newest-first and truncate.

    Timestamps are compared as instants; the normalizer emits one canonical
    ISO form, so this matches descending string order. Equal instants keep
    their input order, which makes the function idempotent.
    """
    unique = dedupe_by_id(events)
    unique.sort(key=_sort_key, reverse=True)
    return unique[:limit]
