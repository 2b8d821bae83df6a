# config.py – Centralized configuration with validation
from __future__ import annotations
import os
from dataclasses import dataclass, field

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass


def _getenv_bool(key: str, default: bool = False) -> bool:
    """Helper to parse boolean environment variables consistently."""
    value = os.getenv(key, str(default)).lower()
    return value in ("1", "true", "yes", "y", "on")


def _getenv_int(key: str, default: int) -> int:
    """Helper to parse integer environment variables with validation."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: {os.getenv(key)}")


def _getenv_float(key: str, default: float) -> float:
    """Helper to parse float environment variables with validation."""
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: {os.getenv(key)}")


_API_BASE = os.getenv("SECMON_API_BASE", "http://localhost:3001").rstrip("/")


@dataclass(frozen=True)
class FeedConfig:
    """Upstream event feeds (served by the controller proxy backend)."""
    events_url: str = os.getenv("FEED_EVENTS_URL", f"{_API_BASE}/api/unifi/events")
    ids_alerts_url: str = os.getenv("FEED_IDS_ALERTS_URL", f"{_API_BASE}/api/unifi/ids-alerts")
    legacy_ips_url: str = os.getenv("FEED_LEGACY_IPS_URL", f"{_API_BASE}/api/unifi/alerts")

    # Input caps per feed
    events_cap: int = _getenv_int("FEED_EVENTS_CAP", 200)
    ids_alerts_cap: int = _getenv_int("FEED_IDS_ALERTS_CAP", 50)
    legacy_ips_cap: int = _getenv_int("FEED_LEGACY_IPS_CAP", 50)

    # Aggregated working set
    max_events: int = _getenv_int("EVENTS_MAX", 200)

    timeout_sec: float = _getenv_float("FEED_TIMEOUT_SEC", 15)

    def __post_init__(self):
        for name in ("events_cap", "ids_alerts_cap", "legacy_ips_cap", "max_events"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name.upper()} must be >= 1")
        if self.timeout_sec <= 0:
            raise ValueError("FEED_TIMEOUT_SEC must be > 0")


@dataclass(frozen=True)
class GeoConfig:
    """GeoIP resolution tiers."""
    # Primary (operator-controlled) resolver
    primary_enabled: bool = _getenv_bool("GEOIP_PRIMARY_ENABLED", True)
    primary_url: str = os.getenv("GEOIP_PRIMARY_URL", f"{_API_BASE}/api/geoip")
    primary_batch_url: str = os.getenv("GEOIP_PRIMARY_BATCH_URL", f"{_API_BASE}/api/geoip/batch")

    # Public fallback (ip-api.com free tier, 45 req/min)
    fallback_enabled: bool = _getenv_bool("GEOIP_FALLBACK_ENABLED", True)
    fallback_url: str = os.getenv("GEOIP_FALLBACK_URL", "http://ip-api.com/json")
    fallback_batch_url: str = os.getenv("GEOIP_FALLBACK_BATCH_URL", "http://ip-api.com/batch")
    fallback_chunk_size: int = _getenv_int("GEOIP_FALLBACK_CHUNK_SIZE", 15)
    fallback_chunk_delay_sec: float = _getenv_float("GEOIP_FALLBACK_CHUNK_DELAY_SEC", 1.0)

    timeout_sec: float = _getenv_float("GEOIP_TIMEOUT_SEC", 10)

    def __post_init__(self):
        if self.fallback_chunk_size < 1:
            raise ValueError("GEOIP_FALLBACK_CHUNK_SIZE must be >= 1")
        if self.fallback_chunk_delay_sec < 0:
            raise ValueError("GEOIP_FALLBACK_CHUNK_DELAY_SEC must be >= 0")
        if self.timeout_sec <= 0:
            raise ValueError("GEOIP_TIMEOUT_SEC must be > 0")


@dataclass(frozen=True)
class ApplicationConfig:
    """Main application configuration."""
    env: str = os.getenv("ENV", "development")
    port: int = _getenv_int("PORT", 8080)
    allowed_origins: str = os.getenv("ALLOWED_ORIGINS", "*")

    # Service credential used when no caller bearer is forwarded
    api_token: str = os.getenv("SECMON_API_TOKEN", "")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    structured_logging: bool = _getenv_bool("STRUCTURED_LOGGING", os.getenv("ENV", "development") == "production")


@dataclass(frozen=True)
class Config:
    """Master configuration object."""
    feeds: FeedConfig = field(default_factory=FeedConfig)
    geo: GeoConfig = field(default_factory=GeoConfig)
    app: ApplicationConfig = field(default_factory=ApplicationConfig)

    def validate(self):
        """Validate the complete configuration."""
        self.feeds.__post_init__()
        self.geo.__post_init__()
        if not (self.geo.primary_enabled or self.geo.fallback_enabled):
            raise ValueError("At least one of GEOIP_PRIMARY_ENABLED / GEOIP_FALLBACK_ENABLED must be true")


# Global config instance
CONFIG = Config()

# Validate configuration on import
try:
    CONFIG.validate()
except Exception as e:
    print(f"Configuration validation failed: {e}")
    print("Please check your environment variables.")
    # Don't exit during import, let the application handle it
