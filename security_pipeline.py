"""security_pipeline.py

One request -> one pipeline pass. Every function opens its own httpx client,
so overlapping refreshes share no state.
"""

from __future__ import annotations

import asyncio
import time
from typing import Dict, Iterable, List, Optional

import httpx

from alert_export import alert_ips, enrich_alerts
from alert_table import AlertView, TableQuery, build_view
from config import CONFIG, Config
from core.models import Event, GeoResult
from event_aggregator import aggregate_events
from feed_normalizer import collect_events, default_feeds, fetch_ids_alerts
from geoip_resolver import GeoResolver
from logging_config import get_logger, get_metrics_logger
from metrics import METRICS, PipelineMetrics

logger = get_logger("security_pipeline")
metrics_log = get_metrics_logger("security_pipeline")
metrics = PipelineMetrics()


def build_client(token: Optional[str], timeout: float,
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Bearer header only when a credential exists; upstreams answer 401 otherwise."""
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.AsyncClient(timeout=timeout, headers=headers, follow_redirects=True, transport=transport)


def _token(token: Optional[str], config: Config) -> Optional[str]:
    return token or config.app.api_token or None


@METRICS.timer("pipeline.refresh_events")
async def refresh_events(token: Optional[str] = None, config: Config = CONFIG,
                         transport: Optional[httpx.AsyncBaseTransport] = None) -> List[Event]:
    """Collect every feed and aggregate into the newest-first working set."""
    start = time.perf_counter()
    async with build_client(_token(token, config), config.feeds.timeout_sec, transport) as client:
        raw = await collect_events(client, default_feeds(config.feeds))

    events = aggregate_events(raw, limit=config.feeds.max_events)
    metrics.events_aggregated(len(events), len(raw) - len(set(e.id for e in raw)))
    metrics_log.refresh_completed(len(raw), len(events), int((time.perf_counter() - start) * 1000))
    return events


async def resolve_geo(ips: Iterable[str], token: Optional[str] = None, config: Config = CONFIG,
                      transport: Optional[httpx.AsyncBaseTransport] = None,
                      sleep=asyncio.sleep) -> Dict[str, GeoResult]:
    async with build_client(_token(token, config), config.geo.timeout_sec, transport) as client:
        resolver = GeoResolver.from_config(client, config.geo, sleep=sleep)
        return await resolver.resolve_batch(ips)


async def resolve_one(ip: str, token: Optional[str] = None, config: Config = CONFIG,
                      transport: Optional[httpx.AsyncBaseTransport] = None) -> Optional[GeoResult]:
    async with build_client(_token(token, config), config.geo.timeout_sec, transport) as client:
        resolver = GeoResolver.from_config(client, config.geo)
        return await resolver.resolve(ip)


async def load_alerts(token: Optional[str] = None, config: Config = CONFIG, geo: bool = False,
                      transport: Optional[httpx.AsyncBaseTransport] = None,
                      sleep=asyncio.sleep) -> tuple:
    """IdsAlerts (optionally geo-enriched) plus the server-reported total."""
    async with build_client(_token(token, config), config.feeds.timeout_sec, transport) as client:
        alerts, total = await fetch_ids_alerts(client, config.feeds.ids_alerts_url)

    if geo and alerts:
        geo_map = await resolve_geo(alert_ips(alerts), token, config, transport, sleep)
        alerts = enrich_alerts(alerts, geo_map)
    return alerts, total


@METRICS.timer("pipeline.load_alert_view")
async def load_alert_view(query: TableQuery, token: Optional[str] = None, config: Config = CONFIG,
                          geo: bool = False,
                          transport: Optional[httpx.AsyncBaseTransport] = None) -> AlertView:
    alerts, total = await load_alerts(token, config, geo, transport)
    view = build_view(alerts, query, total=total)
    logger.debug("alert_view_built", total=view.total, shown=len(view.rows),
                 severity=query.severity, sort=query.sort_field, dir=query.sort_dir)
    return view
