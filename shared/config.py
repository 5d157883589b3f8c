from __future__ import annotations
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from shared.errors import ConfigurationError
from shared.log import get_logger

logger = get_logger(__name__)

# Prefix for environment overrides, e.g. ROOMLINK_HEARTBEAT_INTERVAL=10
ENV_PREFIX = "ROOMLINK_"


@dataclass(frozen=True)
class RoomlinkConfig:
    """Endpoints, handshake constants and timeouts for one session."""

    base_url: str = "https://www.gimkit.com"
    find_info_path: str = "/api/matchmaker/find-info-from-code"
    join_page_path: str = "/join"
    join_path: str = "/api/matchmaker/join"

    # Join token element and the fixed inputs of the hide capability
    jid_meta_property: str = "int:jid"
    credential_key: str = "BSKA"
    cover_text: str = "Gimkit Web Client V3.1"

    heartbeat_interval: float = 25.0
    join_timeout: float = 10.0
    http_timeout: float = 10.0
    user_agent: str = "roomlink/0.1"

    # "module:attribute" of the hide(token, key, cover_text) callable
    hider: Optional[str] = None

    @property
    def find_info_url(self) -> str:
        return self.base_url.rstrip("/") + self.find_info_path

    @property
    def join_page_url(self) -> str:
        return self.base_url.rstrip("/") + self.join_page_path

    @property
    def join_url(self) -> str:
        return self.base_url.rstrip("/") + self.join_path

    def with_overrides(self, **overrides: Any) -> "RoomlinkConfig":
        return replace(self, **_coerce(overrides))


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    """Validate keys and convert values to the declared field types."""
    known = {f.name: f for f in fields(RoomlinkConfig)}
    result: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            raise ConfigurationError(f"Unknown config key: {key}")
        if value is None:
            result[key] = None
            continue
        default = known[key].default
        try:
            if isinstance(default, float):
                value = float(value)
                if value <= 0:
                    raise ValueError("must be positive")
            elif not isinstance(value, str):
                raise ValueError("must be a string")
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid value for {key!r}: {value!r} ({e})") from e
        result[key] = value
    return result


def _env_overrides() -> Dict[str, str]:
    overrides = {}
    for f in fields(RoomlinkConfig):
        env_name = ENV_PREFIX + f.name.upper()
        if env_name in os.environ:
            overrides[f.name] = os.environ[env_name]
    return overrides


def load_config(path: Optional[Path] = None) -> RoomlinkConfig:
    """
    Build the configuration from defaults, an optional YAML file and
    ROOMLINK_* environment variables (highest precedence).
    """
    config = RoomlinkConfig()

    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error reading {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping at the top level")
        config = config.with_overrides(**data)
        logger.debug("Loaded config from %s", path)

    env = _env_overrides()
    if env:
        config = config.with_overrides(**env)
        logger.debug("Applied environment overrides: %s", ", ".join(sorted(env)))

    return config
