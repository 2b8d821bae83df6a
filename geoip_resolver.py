"""geoip_resolver.py

Resolve IP addresses to country/city/coordinates/ISP.
Tiers: operator GeoIP backend -> ip-api.com (free tier, rate limited).

Private, loopback and otherwise non-routable addresses are dropped before any
network call. A miss in every tier is a normal outcome ("unknown location"),
never an exception.
"""

from __future__ import annotations

import asyncio
import ipaddress
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

import httpx

from config import CONFIG, GeoConfig
from core.models import GeoResult
from logging_config import get_logger, get_metrics_logger
from metrics import PipelineMetrics

logger = get_logger("geoip")
metrics_log = get_metrics_logger("geoip")
metrics = PipelineMetrics()

IP_API_FIELDS = "status,country,countryCode,city,lat,lon,isp"
IP_API_BATCH_FIELDS = "status,query,country,countryCode,city,lat,lon,isp"

_PRIVATE_V4_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
)

T = TypeVar("T")
SleepFunc = Callable[[float], Awaitable[None]]


class GeoLookupError(Exception):
    """A tier answered, but not with anything usable."""


def is_private_ip(ip: str) -> bool:
    """
    True for RFC1918, loopback and other non-routable addresses.

    Strings that do not parse as an IP address are treated the same way:
    there is nothing to look up.
    """
    try:
        addr = ipaddress.ip_address((ip or "").strip())
    except ValueError:
        return True
    if addr.version == 4 and any(addr in net for net in _PRIVATE_V4_NETWORKS):
        return True
    return (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_multicast
        or addr.is_reserved
        or addr.is_unspecified
    )


def public_unique(ips: Iterable[str]) -> List[str]:
    """Dedup (first occurrence order) and drop non-routable addresses."""
    out = []
    seen = set()
    for ip in ips:
        ip = (ip or "").strip()
        if not ip or ip in seen:
            continue
        seen.add(ip)
        if is_private_ip(ip):
            metrics.geo_private_skipped()
            continue
        out.append(ip)
    return out


def chunked(items: Sequence[str], size: int) -> List[List[str]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def first_success(strategies: Sequence[T], call: Callable[[T], Awaitable[Optional[object]]]):
    """
    Try strategies in order; the first non-None result wins.
    A strategy that raises counts as absent and the next one is tried.
    """
    for strategy in strategies:
        name = getattr(strategy, "name", type(strategy).__name__)
        try:
            result = await call(strategy)
        except Exception as e:
            logger.warning("geo_tier_failed", tier=name, error=repr(e))
            continue
        if result is not None:
            return result
        logger.debug("geo_tier_empty", tier=name)
    return None


class PrimaryGeoResolver:
    """Operator-controlled GeoIP backend (`GET <url>/{ip}`, `POST <batch_url>`)."""

    name = "primary"

    def __init__(self, client: httpx.AsyncClient, url: str, batch_url: str):
        self.client = client
        self.url = url.rstrip("/")
        self.batch_url = batch_url

    async def lookup(self, ip: str) -> Optional[GeoResult]:
        r = await self.client.get(f"{self.url}/{ip}")
        r.raise_for_status()
        geo = GeoResult.from_payload(r.json())
        metrics.geo_lookup(self.name, geo is not None)
        return geo

    async def lookup_batch(self, ips: List[str]) -> Dict[str, GeoResult]:
        r = await self.client.post(self.batch_url, json={"ips": ips})
        r.raise_for_status()
        body = r.json()
        entries = body.get("results") if isinstance(body, dict) else None
        if not isinstance(entries, list):
            raise GeoLookupError("primary batch response has no 'results' list")

        results: Dict[str, GeoResult] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            ip = entry.get("ip") or entry.get("query")
            geo = GeoResult.from_payload(entry)
            if ip and geo:
                results[ip] = geo
        return results


class IpApiGeoResolver:
    """
    ip-api.com free endpoints.

    The batch endpoint is rate limited: chunks of at most ``chunk_size`` IPs are
    sent one after another with ``chunk_delay`` seconds between calls. A rejected
    or failed chunk is logged and skipped; it is not retried.
    """

    name = "ip-api"

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str = "http://ip-api.com/json",
        batch_url: str = "http://ip-api.com/batch",
        chunk_size: int = 15,
        chunk_delay: float = 1.0,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.client = client
        self.url = url.rstrip("/")
        self.batch_url = batch_url
        self.chunk_size = chunk_size
        self.chunk_delay = chunk_delay
        self.sleep = sleep

    async def lookup(self, ip: str) -> Optional[GeoResult]:
        r = await self.client.get(f"{self.url}/{ip}", params={"fields": IP_API_FIELDS})
        r.raise_for_status()
        geo = GeoResult.from_payload(r.json())
        metrics.geo_lookup(self.name, geo is not None)
        return geo

    async def _lookup_chunk(self, chunk: List[str]) -> Dict[str, GeoResult]:
        r = await self.client.post(self.batch_url, params={"fields": IP_API_BATCH_FIELDS}, json=chunk)
        r.raise_for_status()
        body = r.json()
        if not isinstance(body, list):
            raise GeoLookupError("ip-api batch response is not a list")

        results: Dict[str, GeoResult] = {}
        for entry in body:
            if not isinstance(entry, dict):
                continue
            geo = GeoResult.from_payload(entry)
            if entry.get("query") and geo:
                results[entry["query"]] = geo
        return results

    async def lookup_batch(self, ips: List[str]) -> Dict[str, GeoResult]:
        results: Dict[str, GeoResult] = {}
        chunks = chunked(ips, self.chunk_size)
        for i, chunk in enumerate(chunks):
            if i > 0:
                await self.sleep(self.chunk_delay)
            try:
                results.update(await self._lookup_chunk(chunk))
            except (httpx.HTTPError, ValueError, GeoLookupError) as e:
                logger.error("geo_fallback_chunk_failed", chunk=i + 1, chunks=len(chunks),
                             size=len(chunk), error=repr(e))
                metrics.geo_chunk_failed()
        return results


class GeoResolver:
    """Ordered tiers composed with first_success."""

    def __init__(self, strategies: Sequence):
        self.strategies = list(strategies)

    @classmethod
    def from_config(cls, client: httpx.AsyncClient, config: GeoConfig = CONFIG.geo,
                    sleep: SleepFunc = asyncio.sleep) -> "GeoResolver":
        strategies = []
        if config.primary_enabled:
            strategies.append(PrimaryGeoResolver(client, config.primary_url, config.primary_batch_url))
        if config.fallback_enabled:
            strategies.append(IpApiGeoResolver(
                client,
                url=config.fallback_url,
                batch_url=config.fallback_batch_url,
                chunk_size=config.fallback_chunk_size,
                chunk_delay=config.fallback_chunk_delay_sec,
                sleep=sleep,
            ))
        return cls(strategies)

    async def resolve(self, ip: str, cache: Optional[Dict[str, Optional[GeoResult]]] = None) -> Optional[GeoResult]:
        """
        Resolve one address. ``cache`` is an optional caller-owned mapping
        shared across the lookups of one batch; misses are cached too.
        """
        ip = (ip or "").strip()
        if is_private_ip(ip):
            metrics.geo_private_skipped()
            return None
        if cache is not None and ip in cache:
            return cache[ip]

        geo = await first_success(self.strategies, lambda s: s.lookup(ip))
        if geo is None:
            logger.info("geo_unresolved", ip=ip)
        if cache is not None:
            cache[ip] = geo
        return geo

    async def resolve_batch(self, ips: Iterable[str]) -> Dict[str, GeoResult]:
        """
        Resolve many addresses. Absent keys mean "unknown" (private, or every
        tier failed for that address).
        """
        start = time.perf_counter()
        targets = public_unique(ips)
        if not targets:
            return {}

        results: Dict[str, GeoResult] = {}
        tier = "none"
        for strategy in self.strategies:
            found = await first_success([strategy], lambda s: s.lookup_batch(targets))
            if found is not None:
                results = found
                tier = strategy.name
                break

        wanted = set(targets)
        resolved = {ip: geo for ip, geo in results.items() if ip in wanted}
        metrics_log.geo_batch_resolved(len(targets), len(resolved), tier,
                                       int((time.perf_counter() - start) * 1000))
        return resolved
