from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .const import (
    CONFIG_ENV,
    CONFIG_SECTION,
    CREDENTIAL_KEYS,
    DEFAULT_LISTEN_ADDRESS,
    DEFAULT_REFRESH_MARGIN_SECONDS,
    DEFAULT_REFRESH_RETRY_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
)
from .exceptions import ConfigError


@dataclass
class DeviceAccessConfig:
    project_id: str
    client_id: str
    client_secret: str
    refresh_token: str


@dataclass
class ExporterConfig:
    device_access: DeviceAccessConfig
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    refresh_margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS
    refresh_retry_seconds: float = DEFAULT_REFRESH_RETRY_SECONDS


def parse_listen_address(s: str) -> Tuple[str, int]:
    s = s.strip()
    if s.startswith(":"):
        return "", int(s[1:])
    if ":" in s:
        host, port_s = s.rsplit(":", 1)
        return host, int(port_s)
    return "", int(s)


def find_config_file(explicit: Optional[str] = None) -> Optional[str]:
    cfg_path = explicit or os.environ.get(CONFIG_ENV, "").strip() or None
    if cfg_path is not None:
        return cfg_path

    candidates = [
        Path.cwd() / "config.yml",
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parent.parent / "config.yml",
        Path("/config/config.yml"),
    ]
    for c in candidates:
        if c.is_file():
            return str(c)
    return None


def load_config_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()

    if path.lower().endswith(".json"):
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ConfigError("Config root must be an object")
        return data

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Config is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping/object")
    return data


def _section(cfg: Dict[str, Any], key: str) -> Dict[str, Any]:
    return cfg.get(key, {}) if isinstance(cfg.get(key, {}), dict) else {}


def to_exporter_config(cfg: Dict[str, Any]) -> ExporterConfig:
    """Validate a loaded config document.

    Every credential under ``google_device_access`` is required; all missing
    ones are reported together.
    """
    access = _section(cfg, CONFIG_SECTION)
    missing: List[str] = []
    for key in CREDENTIAL_KEYS:
        v = access.get(key)
        if v is None or not str(v).strip():
            missing.append(f"{CONFIG_SECTION}.{key}")
    if missing:
        raise ConfigError(f"Invalid configuration, missing: {', '.join(missing)}")

    web_cfg = _section(cfg, "web")
    scrape_cfg = _section(cfg, "scrape")
    token_cfg = _section(cfg, "token")

    try:
        timeout_seconds = float(scrape_cfg.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS))
        refresh_margin = float(token_cfg.get("refresh_margin_seconds", DEFAULT_REFRESH_MARGIN_SECONDS))
        refresh_retry = float(token_cfg.get("retry_seconds", DEFAULT_REFRESH_RETRY_SECONDS))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    if timeout_seconds <= 0:
        raise ConfigError("scrape.timeout_seconds must be positive")

    return ExporterConfig(
        device_access=DeviceAccessConfig(**{key: str(access[key]).strip() for key in CREDENTIAL_KEYS}),
        listen_address=str(web_cfg.get("listen_address", DEFAULT_LISTEN_ADDRESS)),
        timeout_seconds=timeout_seconds,
        refresh_margin_seconds=refresh_margin,
        refresh_retry_seconds=refresh_retry,
    )
