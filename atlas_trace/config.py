"""Configuration loading from an optional YAML file and environment variables.

Precedence: environment variables, then the YAML file, then dataclass defaults.

YAML layout::

    lightstep:
      access_token: "..."
      hostname: collector.example.com
      port: 8184
      plaintext: true
    atlas:
      component: atlas
      parts: [0]
"""

import logging
import os
from dataclasses import dataclass

import yaml

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _parse_parts(value) -> tuple[int, ...]:
    """Accept a YAML list or a comma separated string of part indices."""
    if isinstance(value, str):
        value = [v for v in value.split(",") if v.strip()]
    return tuple(int(v) for v in value)


@dataclass(frozen=True)
class Config:
    access_token: str = ""
    collector_host: str = "localhost"
    collector_port: int = 8184
    plaintext: bool = True
    component: str = "atlas"
    parts: tuple[int, ...] = ()
    flush_timeout: float = 5.0
    log_level: str = "INFO"


def load_yaml_config(path: str | None) -> dict:
    """Load the YAML file at *path*. Returns empty dict if no path or no file."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded YAML config from %s", path)
        return data
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}


def load_config(path: str | None = None) -> Config:
    """Build Config from the YAML file at *path* and environment variables."""
    data = load_yaml_config(path or os.environ.get("CONFIG_PATH"))
    lightstep = data.get("lightstep") or {}
    atlas = data.get("atlas") or {}

    log_level = os.environ.get("LOG_LEVEL", data.get("log_level", Config.log_level)).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {log_level}")

    return Config(
        access_token=os.environ.get(
            "LIGHTSTEP_ACCESS_TOKEN", lightstep.get("access_token", Config.access_token)
        ),
        collector_host=os.environ.get(
            "LIGHTSTEP_HOST", lightstep.get("hostname", Config.collector_host)
        ),
        collector_port=int(os.environ.get(
            "LIGHTSTEP_PORT", lightstep.get("port", Config.collector_port)
        )),
        plaintext=_parse_bool(os.environ.get(
            "LIGHTSTEP_PLAINTEXT", lightstep.get("plaintext", Config.plaintext)
        )),
        component=os.environ.get("ATLAS_COMPONENT", atlas.get("component", Config.component)),
        parts=_parse_parts(os.environ.get("ATLAS_PARTS", atlas.get("parts", Config.parts))),
        flush_timeout=float(os.environ.get(
            "FLUSH_TIMEOUT", data.get("flush_timeout", Config.flush_timeout)
        )),
        log_level=log_level,
    )
