# alert_export.py - Geo enrichment merge and CSV/JSON export of the alert table
from __future__ import annotations
import json
from typing import Any, Dict, List, Mapping, Sequence

from core.models import GeoResult, IdsAlert
from core.schemas import IdsAlertSchema

CSV_HEADERS = [
    "ID", "Timestamp", "Severity", "Category", "Signature",
    "Source IP", "Source Port", "Destination IP", "Destination Port", "Action",
    "Country", "City", "ISP", "Latitude", "Longitude",
]

_alert_schema = IdsAlertSchema(many=True)


def enrich_alerts(alerts: Sequence[IdsAlert], geo: Mapping[str, GeoResult]) -> List[IdsAlert]:
    """Attach the source IP's location, else the destination IP's. Unresolved rows pass through."""
    out = []
    for alert in alerts:
        match = geo.get(alert.src_ip) or geo.get(alert.dst_ip)
        out.append(alert.with_geo(match) if match else alert)
    return out


def alert_ips(alerts: Sequence[IdsAlert]) -> List[str]:
    ips = []
    for alert in alerts:
        ips.extend(ip for ip in (alert.src_ip, alert.dst_ip) if ip)
    return ips


def _quoted(value: Any) -> str:
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def _plain(value: Any) -> str:
    return "" if value is None else str(value)


def alerts_to_csv(alerts: Sequence[IdsAlert]) -> str:
    rows = [",".join(CSV_HEADERS)]
    for a in alerts:
        rows.append(",".join([
            _quoted(a.id),
            _quoted(a.timestamp),
            _plain(a.severity),
            _quoted(a.category),
            _quoted(a.signature),
            _plain(a.src_ip),
            _plain(a.src_port),
            _plain(a.dst_ip),
            _plain(a.dst_port),
            _quoted(a.action),
            _quoted(a.country),
            _quoted(a.city),
            _quoted(a.isp),
            _plain(a.lat),
            _plain(a.lng),
        ]))
    return "\n".join(rows)


def alerts_to_json(alerts: Sequence[IdsAlert]) -> str:
    data: List[Dict[str, Any]] = _alert_schema.dump(alerts)
    return json.dumps(data, indent=2)
