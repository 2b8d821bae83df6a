# core/models.py - Canonical records for the security pipeline
from __future__ import annotations
from dataclasses import dataclass, asdict, replace
from typing import Any, Dict, Optional

EVENT_LEVELS = ("info", "warning", "error", "success")

SEVERITIES = ("high", "medium", "low", "info")

# Upstream severity spellings that are folded into the four canonical values
_SEVERITY_ALIASES = {
    "critical": "high",
    "high": "high",
    "medium": "medium",
    "moderate": "medium",
    "low": "low",
    "info": "info",
    "informational": "info",
}


def coerce_severity(value: Any) -> str:
    """Map any upstream severity onto high/medium/low/info (unknown -> info)."""
    if isinstance(value, bool):
        return "info"
    if isinstance(value, (int, float)):
        return {1: "high", 2: "medium", 3: "low"}.get(int(value), "info")
    if isinstance(value, str):
        text = value.strip().lower()
        if text.isdigit():
            return coerce_severity(int(text))
        return _SEVERITY_ALIASES.get(text, "info")
    return "info"


def as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass(frozen=True)
class Event:
    id: str
    timestamp: str
    level: str
    source: str
    message: str

    def __post_init__(self):
        for name in ("id", "timestamp", "source", "message"):
            if not getattr(self, name):
                raise ValueError(f"Event.{name} must be non-empty")
        if self.level not in EVENT_LEVELS:
            raise ValueError(f"Invalid event level: {self.level!r}")

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class GeoResult:
    country: str
    country_code: str
    city: str
    lat: float
    lng: float
    isp: str

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> Optional["GeoResult"]:
        """
        Build from a resolver payload. Accepts ``lng`` (primary backend) or
        ``lon`` (ip-api). Returns None unless status is absent/"success" and
        both coordinates are present.
        """
        if not isinstance(data, dict):
            return None
        status = data.get("status")
        if status is not None and status != "success":
            return None
        lat = as_float(data.get("lat"))
        lng = as_float(data.get("lng", data.get("lon")))
        if lat is None or lng is None:
            return None
        return cls(
            country=as_str(data.get("country")),
            country_code=as_str(data.get("countryCode")),
            city=as_str(data.get("city")),
            lat=lat,
            lng=lng,
            isp=as_str(data.get("isp")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "country": self.country,
            "countryCode": self.country_code,
            "city": self.city,
            "lat": self.lat,
            "lng": self.lng,
            "isp": self.isp,
        }


@dataclass(frozen=True)
class IdsAlert:
    """
    Security alert row. Feed constructors (``from_feed`` and the controller
    mappers) always run severity through ``coerce_severity``.
    """
    id: str
    timestamp: str
    severity: str
    category: str = ""
    signature: str = ""
    src_ip: str = ""
    src_port: int = 0
    dst_ip: str = ""
    dst_port: int = 0
    action: str = ""
    proto: str = ""
    app_proto: str = ""
    interface: str = ""
    # Populated by geo enrichment only
    country: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    isp: Optional[str] = None

    @classmethod
    def from_feed(cls, raw: Dict[str, Any]) -> "IdsAlert":
        """Coerce an ids-alerts feed record (camelCase wire names)."""
        return cls(
            id=as_str(raw.get("id")),
            timestamp=as_str(raw.get("timestamp")),
            severity=coerce_severity(raw.get("severity")),
            category=as_str(raw.get("category")),
            signature=as_str(raw.get("signature")),
            src_ip=as_str(raw.get("srcIp")),
            src_port=as_int(raw.get("srcPort")),
            dst_ip=as_str(raw.get("dstIp")),
            dst_port=as_int(raw.get("dstPort")),
            action=as_str(raw.get("action")),
            proto=as_str(raw.get("proto")),
            app_proto=as_str(raw.get("appProto")),
            interface=as_str(raw.get("interface")),
            country=raw.get("country"),
            city=raw.get("city"),
            lat=as_float(raw.get("lat")),
            lng=as_float(raw.get("lng")),
            isp=raw.get("isp"),
        )

    def with_geo(self, geo: GeoResult) -> "IdsAlert":
        return replace(
            self,
            country=geo.country,
            city=geo.city,
            lat=geo.lat,
            lng=geo.lng,
            isp=geo.isp,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "timestamp": self.timestamp,
            "severity": self.severity,
            "category": self.category,
            "signature": self.signature,
            "srcIp": self.src_ip,
            "srcPort": self.src_port,
            "dstIp": self.dst_ip,
            "dstPort": self.dst_port,
            "action": self.action,
            "proto": self.proto,
            "appProto": self.app_proto,
            "interface": self.interface,
        }
        for key in ("country", "city", "lat", "lng", "isp"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data
