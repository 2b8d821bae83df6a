# logging_config.py - Structured logging for the security pipeline
import structlog
import logging
import sys
from typing import Optional

from config import CONFIG, ApplicationConfig

def setup_logging(service_name: Optional[str] = None, app_config: Optional[ApplicationConfig] = None) -> None:
    """
    Configure structured logging

    Args:
        service_name: Name of the service (e.g., "secmon-api", "secmon-refresh")
        app_config: Log level and renderer choice; defaults to CONFIG.app
    """
    app_config = app_config or CONFIG.app

    # Clear existing handlers to avoid duplicates
    logging.root.handlers.clear()

    # Base processors for all environments
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # Add service context if provided
    if service_name:
        processors.insert(0, lambda logger, method_name, event_dict:
                         dict(event_dict, service=service_name))

    # JSON in production, console renderer in development
    if app_config.structured_logging:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    log_level = app_config.log_level.upper()
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level, logging.INFO),
        handlers=[logging.StreamHandler()],
        force=True  # Override existing configuration
    )

    # Reduce noise from verbose libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance

    Args:
        name: Logger name (usually module name)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)

class MetricsLogger:
    """Helper class for consistent metrics logging"""

    def __init__(self, logger: structlog.stdlib.BoundLogger):
        self.logger = logger

    def feed_fetched(self, feed: str, records: int, duration_ms: int, ok: bool = True, **kwargs):
        """Log one upstream feed call"""
        self.logger.info(
            "feed_fetched",
            feed=feed,
            records=records,
            duration_ms=duration_ms,
            ok=ok,
            **kwargs
        )

    def refresh_completed(self, raw_events: int, events: int, duration_ms: int, **kwargs):
        """Log one refresh cycle (normalize + aggregate)"""
        self.logger.info(
            "refresh_completed",
            raw_events=raw_events,
            events=events,
            duration_ms=duration_ms,
            **kwargs
        )

    def geo_batch_resolved(self, requested: int, resolved: int, tier: str,
                           duration_ms: int, **kwargs):
        """Log a batch geolocation pass"""
        self.logger.info(
            "geo_batch_resolved",
            requested=requested,
            resolved=resolved,
            tier=tier,
            duration_ms=duration_ms,
            **kwargs
        )

    def api_request(self, endpoint: str, method: str, status_code: int,
                   duration_ms: int, **kwargs):
        """Log API request metrics"""
        self.logger.info(
            "api_request",
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            duration_ms=duration_ms,
            **kwargs
        )

def get_metrics_logger(name: str) -> MetricsLogger:
    """Get a metrics logger instance"""
    logger = get_logger(name)
    return MetricsLogger(logger)
