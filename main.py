# main.py - Security monitor API (events feed, IDS/IPS table, GeoIP)
from __future__ import annotations

# Initialize logging early (before any logger usage)
from logging_config import get_logger, setup_logging
setup_logging("secmon-api")
logger = get_logger("secmon.main")

from flask import Flask, jsonify, make_response, request

from api.security_api import security_api
from config import CONFIG
from metrics import PipelineMetrics

app = Flask(__name__)
app.register_blueprint(security_api, url_prefix="/api/security")

pipeline_metrics = PipelineMetrics()

# ---------- CORS ----------
ALLOWED_ORIGINS = [o.strip() for o in CONFIG.app.allowed_origins.split(",") if o.strip()]


def _build_cors_response(resp):
    origin = request.headers.get("Origin")
    # "*" or an exact match is echoed; otherwise the header is omitted
    if "*" in ALLOWED_ORIGINS:
        resp.headers["Access-Control-Allow-Origin"] = "*"
    elif origin and origin in ALLOWED_ORIGINS:
        resp.headers["Access-Control-Allow-Origin"] = origin
    resp.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
    resp.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    resp.headers["Access-Control-Expose-Headers"] = "Content-Disposition"
    return resp


@app.after_request
def _after(resp):
    return _build_cors_response(resp)


@app.route("/_options", methods=["OPTIONS"])
def _options_only():
    return _build_cors_response(make_response("", 204))


@app.route("/health", methods=["GET"])
def health_check():
    """Liveness plus in-process pipeline counters."""
    return jsonify({
        "status": "healthy",
        "env": CONFIG.app.env,
        "geo_tiers": {
            "primary": CONFIG.geo.primary_enabled,
            "fallback": CONFIG.geo.fallback_enabled,
        },
        "metrics": pipeline_metrics.get_metrics_summary(),
    })


@app.route("/ping", methods=["GET"])
def ping():
    """Simple liveness probe."""
    return jsonify({"status": "ok", "message": "pong"})


if __name__ == "__main__":
    logger.info("server_starting", port=CONFIG.app.port, env=CONFIG.app.env)
    app.run(host="0.0.0.0", port=CONFIG.app.port, debug=False)
