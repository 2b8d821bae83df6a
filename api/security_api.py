# api/security_api.py - Security monitor endpoints (events feed, IDS table, GeoIP)
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Optional

from flask import Blueprint, jsonify, make_response, request
from marshmallow import ValidationError

import security_pipeline
from alert_export import alerts_to_csv, alerts_to_json
from alert_table import TableQuery
from core.schemas import AlertQuerySchema, GeoBatchRequestSchema, validate_ip_text
from logging_config import get_logger, get_metrics_logger

security_api = Blueprint("security_api", __name__)

logger = get_logger("security_api")
metrics_log = get_metrics_logger("security_api")

_query_schema = AlertQuerySchema()
_batch_schema = GeoBatchRequestSchema()

EXPORT_FORMATS = {"csv": "text/csv", "json": "application/json"}


def _bearer() -> Optional[str]:
    """Forward the caller's bearer upstream; the pipeline falls back to the service token."""
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def _table_query():
    params = _query_schema.load(request.args.to_dict())
    query = TableQuery(
        search=params["q"],
        severity=params["severity"],
        sort_field=params["sort"],
        sort_dir=params["dir"],
    )
    return query, params["geo"]


def _timed(endpoint: str, status: int, start: float):
    metrics_log.api_request(endpoint, request.method, status, int((time.perf_counter() - start) * 1000))


# ---------------- events feed ----------------
@security_api.route("/events", methods=["GET"])
def get_events():
    start = time.perf_counter()
    events = asyncio.run(security_pipeline.refresh_events(token=_bearer()))
    _timed("events", 200, start)
    return jsonify(events=[e.to_dict() for e in events], count=len(events)), 200


# ---------------- IDS/IPS alert table ----------------
@security_api.route("/ids-alerts", methods=["GET"])
def get_ids_alerts():
    """GET /api/security/ids-alerts?q=ET&severity=high&sort=severity&dir=asc&geo=true"""
    start = time.perf_counter()
    try:
        query, geo = _table_query()
    except (ValidationError, ValueError) as e:
        messages = e.messages if isinstance(e, ValidationError) else str(e)
        _timed("ids-alerts", 400, start)
        return jsonify(error="Invalid query", details=messages), 400

    view = asyncio.run(security_pipeline.load_alert_view(query, token=_bearer(), geo=geo))
    _timed("ids-alerts", 200, start)
    return jsonify(view.to_dict()), 200


@security_api.route("/ids-alerts/export", methods=["GET"])
def export_ids_alerts():
    """Download the current view (same filter/sort params) as CSV or JSON."""
    fmt = (request.args.get("format") or "csv").lower()
    if fmt not in EXPORT_FORMATS:
        return jsonify(error=f"Unsupported export format: {fmt}"), 400
    try:
        query, geo = _table_query()
    except (ValidationError, ValueError) as e:
        messages = e.messages if isinstance(e, ValidationError) else str(e)
        return jsonify(error="Invalid query", details=messages), 400

    view = asyncio.run(security_pipeline.load_alert_view(query, token=_bearer(), geo=geo))
    body = alerts_to_csv(view.rows) if fmt == "csv" else alerts_to_json(view.rows)

    day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    resp = make_response(body, 200)
    resp.headers["Content-Type"] = EXPORT_FORMATS[fmt]
    resp.headers["Content-Disposition"] = f'attachment; filename="ids-alerts-{day}.{fmt}"'
    logger.info("ids_alerts_exported", format=fmt, rows=len(view.rows))
    return resp


# ---------------- GeoIP ----------------
@security_api.route("/geoip/<ip>", methods=["GET"])
def get_geoip(ip: str):
    try:
        validate_ip_text(ip)
    except ValidationError as e:
        return jsonify(error="Invalid IP", details=e.messages), 400

    geo = asyncio.run(security_pipeline.resolve_one(ip, token=_bearer()))
    if geo is None:
        return jsonify(ip=ip, status="unknown"), 200
    return jsonify(ip=ip, status="success", **geo.to_dict()), 200


@security_api.route("/geoip/batch", methods=["POST"])
def post_geoip_batch():
    """POST {"ips": ["8.8.8.8", ...]} -> {"results": {"8.8.8.8": {...}}}"""
    start = time.perf_counter()
    try:
        payload = _batch_schema.load(request.get_json(silent=True) or {})
    except ValidationError as e:
        _timed("geoip/batch", 400, start)
        return jsonify(error="Invalid request", details=e.messages), 400

    results = asyncio.run(security_pipeline.resolve_geo(payload["ips"], token=_bearer()))
    _timed("geoip/batch", 200, start)
    return jsonify(results={ip: geo.to_dict() for ip, geo in results.items()}), 200
