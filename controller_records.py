# controller_records.py - Raw UniFi controller records -> pipeline records
# - IPS/IDS events (stat/ips/event, v2 security/events) -> IdsAlert
# - Generic controller events (stat/event) -> events-feed records
# - Controller severity scheme: inner_alert_severity 1=high, 2=medium, 3=low

from __future__ import annotations
import hashlib
import json
from typing import Any, Dict, Iterable, List, Optional

from core.models import IdsAlert, coerce_severity, as_int, as_str
from core.timestamps import normalize_timestamp

_SECURITY_KEY_MARKERS = ("EVT_IPS", "EVT_IDS", "EVT_FW")
_SECURITY_CATEGORY_MARKERS = ("attack", "intrusion", "threat")


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    """First truthy value among keys (nested keys written as 'a.b')."""
    for key in keys:
        value: Any = raw
        for part in key.split("."):
            value = value.get(part) if isinstance(value, dict) else None
        if value:
            return value
    return None


def record_id(raw: Dict[str, Any], prefix: str) -> str:
    """Upstream id, else a stable content hash of the record."""
    upstream = _first(raw, "_id", "id")
    if upstream:
        return as_str(upstream)
    digest = hashlib.sha1(
        json.dumps(raw, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()
    return f"{prefix}-{digest[:16]}"


def map_ids_severity(raw: Dict[str, Any]) -> str:
    sev = raw.get("inner_alert_severity") or raw.get("severity")
    if sev is not None:
        mapped = coerce_severity(sev)
        if mapped != "info":
            return mapped

    key = as_str(raw.get("key"))
    catname = as_str(raw.get("catname")).lower()
    if "attack" in catname or "EVT_IPS" in key:
        return "high"
    if "EVT_IDS" in key:
        return "medium"
    return "info"


def is_security_record(raw: Dict[str, Any]) -> bool:
    """Keep IPS/IDS/firewall records, drop client roaming and connection noise."""
    key = as_str(raw.get("key"))
    if any(marker in key for marker in _SECURITY_KEY_MARKERS):
        return True
    catname = as_str(raw.get("catname")).lower()
    if any(marker in catname for marker in _SECURITY_CATEGORY_MARKERS):
        return True
    return bool(raw.get("inner_alert_signature"))


def normalize_ids_record(raw: Dict[str, Any]) -> IdsAlert:
    return IdsAlert(
        id=record_id(raw, "ids"),
        timestamp=normalize_timestamp(raw.get("timestamp"), raw.get("datetime"), raw.get("time")),
        severity=map_ids_severity(raw),
        category=as_str(_first(raw, "catname", "category", "event_type", "key") or "unknown"),
        signature=as_str(_first(raw, "msg", "message", "name", "inner_alert_signature") or ""),
        src_ip=as_str(_first(raw, "src_ip", "srcipAddress.ip") or ""),
        src_port=as_int(_first(raw, "src_port", "srcPort")),
        dst_ip=as_str(_first(raw, "dst_ip", "dstipAddress.ip") or ""),
        dst_port=as_int(_first(raw, "dst_port", "dstPort")),
        action=as_str(_first(raw, "action", "inner_alert_action", "in_cat") or "alert"),
        proto=as_str(_first(raw, "proto", "protocol") or ""),
        app_proto=as_str(raw.get("app_proto") or ""),
        interface=as_str(raw.get("dest_interface") or ""),
    )


def normalize_ids_records(records: Iterable[Any], limit: Optional[int] = None,
                          security_only: bool = False) -> List[IdsAlert]:
    """Map a controller response; non-dict entries are skipped."""
    rows = [r for r in records if isinstance(r, dict)]
    if security_only:
        rows = [r for r in rows if is_security_record(r)]
    if limit is not None:
        rows = rows[:limit]
    return [normalize_ids_record(r) for r in rows]


def _event_type(key: str) -> str:
    if key.startswith("EVT_IPS"):
        return "ids"
    if key.startswith("EVT_FW"):
        return "firewall"
    return "system"


def normalize_controller_event(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Raw stat/event record -> the events-feed record shape."""
    key = as_str(raw.get("key"))
    return {
        "id": record_id(raw, "evt"),
        "timestamp": normalize_timestamp(raw.get("datetime"), raw.get("time")),
        "key": key,
        "msg": as_str(_first(raw, "msg", "message") or ""),
        "subsystem": as_str(raw.get("subsystem") or ""),
        "type": _event_type(key),
        "srcIp": as_str(raw.get("src_ip") or ""),
        "dstIp": as_str(raw.get("dst_ip") or ""),
        "srcPort": as_int(raw.get("src_port")),
        "dstPort": as_int(raw.get("dst_port")),
        "proto": as_str(raw.get("proto") or ""),
        "action": as_str(_first(raw, "inner_alert_action", "action") or ""),
        "deviceName": as_str(_first(raw, "sw_name", "ap_name", "gw_name") or ""),
        "deviceMac": as_str(_first(raw, "sw", "ap", "gw") or ""),
        "clientName": as_str(_first(raw, "hostname", "guest", "user") or ""),
        "clientMac": as_str(_first(raw, "client", "sta") or ""),
    }
