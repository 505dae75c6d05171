"""Configuration management for GateWatch."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .constants import DEFAULT_TRUSTED_GATEWAYS
from .utils.domains import normalize_hostname, registered_domain

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Application configuration loaded from environment."""

    # Threat feed
    intel_manifest_url: str = ""
    update_interval_minutes: int = 360
    min_fetch_seconds: int = 60
    fetch_timeout: int = 30

    # Matching policy
    match_domain_first: bool = True
    trusted_gateways: list[str] = field(default_factory=lambda: list(DEFAULT_TRUSTED_GATEWAYS))

    # Health server (optional)
    health_host: str = "127.0.0.1"
    health_port: int = 8081
    health_enabled: bool = True

    log_level: str = "INFO"

    # Paths
    data_dir: Path = Path("./data")
    config_dir: Path = Path("./config")


def parse_gateway_list(values) -> list[str]:
    """Normalize trusted gateway hostnames, dropping invalid ones.

    Bare public suffixes ("ir", "co.uk") are dropped too; trusting one would
    trust every site under it.
    """
    gateways: list[str] = []
    for value in values or []:
        try:
            host = normalize_hostname(str(value))
        except ValueError:
            logger.warning("Ignoring invalid trusted gateway: %r", value)
            continue
        if not registered_domain(host):
            logger.warning("Ignoring trusted gateway that is not a registrable domain: %r", value)
            continue
        if host not in gateways:
            gateways.append(host)
    return gateways


def _load_gateway_overrides(config_dir: Path) -> dict:
    """Load trusted gateway overrides from config/gateways.yaml (optional).

    Format:
        trusted_gateways:
          - shaparak.ir
          - example-bank.ir
        replace_defaults: false
    """
    path = Path(config_dir or ".") / "gateways.yaml"
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except Exception as exc:
        logger.warning("Failed to parse gateways.yaml: %s", exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring gateways.yaml: expected a mapping")
        return {}

    raw = data.get("trusted_gateways")
    return {
        "trusted_gateways": parse_gateway_list(raw if isinstance(raw, list) else []),
        "replace_defaults": bool(data.get("replace_defaults", False)),
    }


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    overrides = _load_gateway_overrides(config_dir)

    gateways = [] if overrides.get("replace_defaults") else list(DEFAULT_TRUSTED_GATEWAYS)
    gateways.extend(overrides.get("trusted_gateways", []))
    gateways.extend(parse_gateway_list(
        g.strip() for g in os.getenv("TRUSTED_GATEWAYS", "").split(",") if g.strip()
    ))

    return Config(
        intel_manifest_url=os.getenv("INTEL_MANIFEST_URL", "").strip(),
        update_interval_minutes=int(os.getenv("INTEL_UPDATE_INTERVAL_MINUTES", "360")),
        min_fetch_seconds=int(os.getenv("INTEL_MIN_FETCH_SECONDS", "60")),
        fetch_timeout=int(os.getenv("INTEL_FETCH_TIMEOUT", "30")),
        match_domain_first=_env_bool("MATCH_DOMAIN_FIRST", "true"),
        trusted_gateways=list(dict.fromkeys(gateways)),
        health_host=os.getenv("HEALTH_HOST", "127.0.0.1"),
        health_port=int(os.getenv("HEALTH_PORT", "8081")),
        health_enabled=_env_bool("HEALTH_ENABLED", "true"),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        data_dir=Path(os.getenv("DATA_DIR", "./data")),
        config_dir=config_dir,
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []
    if config.update_interval_minutes <= 0:
        errors.append("INTEL_UPDATE_INTERVAL_MINUTES must be positive")
    if config.min_fetch_seconds < 0:
        errors.append("INTEL_MIN_FETCH_SECONDS must not be negative")
    if config.fetch_timeout <= 0:
        errors.append("INTEL_FETCH_TIMEOUT must be positive")
    if not config.trusted_gateways:
        errors.append("At least one trusted gateway is required")
    usable = set(parse_gateway_list(config.trusted_gateways))
    for gateway in config.trusted_gateways:
        try:
            host = normalize_hostname(str(gateway))
        except ValueError:
            host = None
        if host not in usable:
            errors.append(f"Trusted gateway {gateway!r} is not a registrable domain")

    url = config.intel_manifest_url
    if url and not url.lower().startswith("https://"):
        errors.append("INTEL_MANIFEST_URL must use https")
    if not url:
        # Classification still works from the persisted/bootstrap snapshot.
        logger.info("No INTEL_MANIFEST_URL configured; threat feed updates are disabled")

    return errors
