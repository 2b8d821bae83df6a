# feed_normalizer.py - Concurrent feed fetch + per-feed mapping into canonical Events
# - One GET per feed, launched together, each guarded on its own
# - A failed feed (network, non-2xx, malformed body) contributes nothing
# - Classification rules live in FEED_MAPPERS, one pure function per feed

from __future__ import annotations
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from config import CONFIG, FeedConfig
from controller_records import (
    normalize_controller_event,
    normalize_ids_record,
    normalize_ids_records,
    record_id,
)
from core.models import Event, IdsAlert, as_str
from core.timestamps import normalize_timestamp
from logging_config import get_logger, get_metrics_logger
from metrics import PipelineMetrics

logger = get_logger("feed_normalizer")
metrics_log = get_metrics_logger("feed_normalizer")
metrics = PipelineMetrics()

MESSAGE_PLACEHOLDER = "(no message)"


class FeedError(Exception):
    """Raised inside a feed call; never escapes collect_events."""
    def __init__(self, feed: str, reason: str, detail: str = ""):
        super().__init__(f"Feed '{feed}' failed: {reason}{': ' + detail if detail else ''}")
        self.feed = feed
        self.reason = reason


def _message(raw: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = raw.get(key)
        if value:
            return as_str(value)
    return MESSAGE_PLACEHOLDER


# ---------------------------------------------------------------------------
# Feed A: controller events
# ---------------------------------------------------------------------------

def classify_event_level(raw: Dict[str, Any]) -> str:
    event_type = as_str(raw.get("type"))
    if event_type in ("ids", "firewall"):
        return "error"
    key = as_str(raw.get("key"))
    if "Lost_Contact" in key or "Disconnect" in key:
        return "warning"
    if "Connected" in key or "Upgraded" in key:
        return "success"
    return "info"


def event_source(raw: Dict[str, Any]) -> str:
    event_type = as_str(raw.get("type"))
    if event_type == "ids":
        return "IDS/IPS"
    if event_type == "firewall":
        return "Firewall"
    device = as_str(raw.get("deviceName"))
    return f"UniFi ({device})" if device else "UniFi"


def map_controller_event(raw: Dict[str, Any]) -> Event:
    if "type" not in raw and ("datetime" in raw or "subsystem" in raw):
        # Straight from stat/event, not yet shaped by the proxy backend
        raw = normalize_controller_event(raw)
    return Event(
        id=record_id(raw, "events"),
        timestamp=normalize_timestamp(raw.get("timestamp"), raw.get("datetime"), raw.get("time")),
        level=classify_event_level(raw),
        source=event_source(raw),
        message=_message(raw, "msg", "message", "key"),
    )


# ---------------------------------------------------------------------------
# Feed B: IDS/IPS alerts
# ---------------------------------------------------------------------------

_SEVERITY_LEVELS = {"high": "error", "medium": "warning"}


def map_ids_alert_event(raw: Dict[str, Any]) -> Event:
    return Event(
        id=record_id(raw, "ids-alerts"),
        timestamp=normalize_timestamp(raw.get("timestamp")),
        level=_SEVERITY_LEVELS.get(as_str(raw.get("severity")).strip().lower(), "info"),
        source="IDS/IPS",
        message=_message(raw, "signature", "category"),
    )


# ---------------------------------------------------------------------------
# Feed C: legacy IPS events (raw stat/ips/event)
# ---------------------------------------------------------------------------

def map_legacy_ips_event(raw: Dict[str, Any]) -> Event:
    return Event(
        id=record_id(raw, "legacy-ips"),
        timestamp=normalize_timestamp(raw.get("timestamp"), raw.get("datetime"), raw.get("time")),
        level="error",
        source="IPS Alert",
        message=_message(raw, "msg", "inner_alert_signature", "catname"),
    )


FEED_MAPPERS: Dict[str, Callable[[Dict[str, Any]], Event]] = {
    "events": map_controller_event,
    "ids-alerts": map_ids_alert_event,
    "legacy-ips": map_legacy_ips_event,
}


@dataclass(frozen=True)
class FeedSpec:
    name: str
    url: str
    payload_key: str
    cap: int

    @property
    def mapper(self) -> Callable[[Dict[str, Any]], Event]:
        return FEED_MAPPERS[self.name]


def default_feeds(config: FeedConfig = CONFIG.feeds) -> List[FeedSpec]:
    return [
        FeedSpec("events", config.events_url, "events", config.events_cap),
        FeedSpec("ids-alerts", config.ids_alerts_url, "alerts", config.ids_alerts_cap),
        FeedSpec("legacy-ips", config.legacy_ips_url, "data", config.legacy_ips_cap),
    ]


def map_feed_records(spec: FeedSpec, records: Sequence[Any]) -> List[Event]:
    """Cap the input, then map each dict record; other entries are skipped."""
    events = []
    for raw in records[:spec.cap]:
        if not isinstance(raw, dict):
            logger.debug("feed_record_skipped", feed=spec.name, kind=type(raw).__name__)
            continue
        events.append(spec.mapper(raw))
    return events


async def _get_payload(client: httpx.AsyncClient, feed: str, url: str) -> Dict[str, Any]:
    try:
        r = await client.get(url)
    except httpx.HTTPError as e:
        raise FeedError(feed, "network", repr(e)) from e
    if not r.is_success:
        raise FeedError(feed, "status", str(r.status_code))
    try:
        body = r.json()
    except ValueError as e:
        raise FeedError(feed, "malformed", "body is not JSON") from e
    if not isinstance(body, dict):
        raise FeedError(feed, "malformed", "body is not an object")
    return body


async def fetch_feed_records(client: httpx.AsyncClient, spec: FeedSpec) -> List[Any]:
    body = await _get_payload(client, spec.name, spec.url)
    records = body.get(spec.payload_key)
    if not isinstance(records, list):
        raise FeedError(spec.name, "malformed", f"missing list '{spec.payload_key}'")
    return records


async def _collect_one(client: httpx.AsyncClient, spec: FeedSpec) -> List[Event]:
    start = time.perf_counter()
    try:
        records = await fetch_feed_records(client, spec)
        events = map_feed_records(spec, records)
    except FeedError as e:
        logger.warning("feed_failed", feed=spec.name, url=spec.url, reason=e.reason, error=str(e))
        metrics.feed_failed(spec.name, e.reason)
        metrics_log.feed_fetched(spec.name, 0, int((time.perf_counter() - start) * 1000), ok=False)
        return []
    except Exception as e:
        # A record the mapper cannot handle drops this feed only
        logger.error("feed_mapping_failed", feed=spec.name, error=repr(e), exc_info=True)
        metrics.feed_failed(spec.name, "mapping")
        return []

    metrics.feed_ok(spec.name, len(events))
    metrics_log.feed_fetched(spec.name, len(events), int((time.perf_counter() - start) * 1000))
    return events


async def collect_events(client: httpx.AsyncClient, feeds: Optional[Sequence[FeedSpec]] = None) -> List[Event]:
    """
    Fetch every feed concurrently and return the mapped Events of all feeds
    that succeeded, concatenated in feed order (not deduplicated or sorted).
    """
    feeds = list(feeds) if feeds is not None else default_feeds()
    if not feeds:
        logger.warning("no_feeds_configured")
        return []

    results = await asyncio.gather(*[_collect_one(client, spec) for spec in feeds])
    events: List[Event] = []
    for batch in results:
        events.extend(batch)
    return events


# ---------------------------------------------------------------------------
# IDS alert table feed
# ---------------------------------------------------------------------------

def _is_feed_shaped(raw: Dict[str, Any]) -> bool:
    return "srcIp" in raw or "signature" in raw


def parse_ids_alert(raw: Dict[str, Any]) -> IdsAlert:
    """Proxy-normalized records carry camelCase fields; anything else is raw controller data."""
    if _is_feed_shaped(raw):
        alert = IdsAlert.from_feed(raw)
        if not alert.id:
            return IdsAlert.from_feed(dict(raw, id=record_id(raw, "ids")))
        return alert
    return normalize_ids_record(raw)


async def fetch_ids_alerts(client: httpx.AsyncClient, url: Optional[str] = None) -> Tuple[List[IdsAlert], int]:
    """Alerts plus the server-reported total; ([], 0) when the feed is unavailable."""
    url = url or CONFIG.feeds.ids_alerts_url
    try:
        body = await _get_payload(client, "ids-alerts", url)
    except FeedError as e:
        logger.warning("ids_alerts_unavailable", url=url, reason=e.reason, error=str(e))
        metrics.feed_failed("ids-alerts", e.reason)
        return [], 0

    records = body.get("alerts")
    if not isinstance(records, list):
        logger.warning("ids_alerts_malformed", url=url)
        metrics.feed_failed("ids-alerts", "malformed")
        return [], 0

    rows = [r for r in records if isinstance(r, dict)]
    if rows and not any(_is_feed_shaped(r) for r in rows):
        # Generic stat/event fallback: only IPS/IDS/firewall records are alerts
        alerts = normalize_ids_records(rows, security_only=True)
        logger.debug("ids_alerts_from_controller_events", records=len(rows), alerts=len(alerts))
        return alerts, len(alerts)

    alerts = [parse_ids_alert(r) for r in rows]
    try:
        total = int(body.get("total", len(alerts)))
    except (TypeError, ValueError):
        total = len(alerts)
    return alerts, total
