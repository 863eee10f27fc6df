"""
Client configuration.

Values come from defaults, then an optional YAML file, then environment
variables (highest precedence). Example `livelink.yaml`:

    origin: https://app.example.com
    credential_key: auth-token
    reconnect_delay: 3
    config_timeout: 10
    dev_port_map:
      "3001": "3002"
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from client.credentials import DEFAULT_CREDENTIAL_KEY
from client.location import Location
from shared.log import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path("livelink.yaml")

_ENV_OVERRIDES = {
    "LIVELINK_ORIGIN": "origin",
    "LIVELINK_CREDENTIALS": "credentials_path",
    "LIVELINK_CREDENTIAL_KEY": "credential_key",
    "LIVELINK_RECONNECT_DELAY": "reconnect_delay",
    "LIVELINK_CONFIG_TIMEOUT": "config_timeout",
}


class ConfigError(Exception):
    """Raised when the configuration file or a value in it is invalid."""
    pass


@dataclass
class ClientConfig:
    origin: str = "http://localhost:3002"
    credential_key: str = DEFAULT_CREDENTIAL_KEY
    credentials_path: Path = field(default_factory=lambda: Path.home() / ".livelink" / "credentials.json")
    reconnect_delay: float = 3.0
    config_path: str = "/api/config"
    socket_path: str = "/ws"
    config_timeout: Optional[float] = 10.0
    # front-end dev server port -> back-end dev server port
    dev_port_map: Dict[str, str] = field(default_factory=lambda: {"3001": "3002"})
    ping_interval: Optional[float] = 15.0
    ping_timeout: Optional[float] = 45.0

    @property
    def location(self) -> Location:
        return Location.from_url(self.origin)

    def validate(self) -> None:
        try:
            self.location
        except ValueError as e:
            raise ConfigError(str(e)) from e
        if self.reconnect_delay < 0:
            raise ConfigError("reconnect_delay must be >= 0")
        if self.config_timeout is not None and self.config_timeout <= 0:
            raise ConfigError("config_timeout must be > 0")
        for path_name in ("config_path", "socket_path"):
            if not getattr(self, path_name).startswith("/"):
                raise ConfigError(f"{path_name} must start with '/'")
        for front, back in self.dev_port_map.items():
            if not (front.isdigit() and back.isdigit()):
                raise ConfigError(f"dev_port_map entries must be ports: {front!r} -> {back!r}")


def _coerce(name: str, value: Any) -> Any:
    if name == "credentials_path":
        return Path(value).expanduser()
    if name == "dev_port_map":
        if not isinstance(value, dict):
            raise ConfigError("dev_port_map must be a mapping")
        return {str(k): str(v) for k, v in value.items()}
    if name in ("reconnect_delay", "config_timeout", "ping_interval", "ping_timeout"):
        if value is None and name != "reconnect_delay":
            return None
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if not isinstance(value, str):
        raise ConfigError(f"{name} must be a string, got {value!r}")
    return value


def load_config(path: Optional[Path] = None, env: Optional[Dict[str, str]] = None) -> ClientConfig:
    """Build a ClientConfig from an optional YAML file and the environment."""
    env = os.environ if env is None else env
    values: Dict[str, Any] = {}

    config_file = path or DEFAULT_CONFIG_FILE
    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Error reading {config_file}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{config_file} must contain a mapping")
        known = {f.name for f in fields(ClientConfig)}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown config key %r in %s", key, config_file)
                continue
            values[key] = _coerce(key, value)
        logger.debug("Loaded config from %s", config_file)
    elif path is not None:
        raise ConfigError(f"Config file not found: {config_file}")

    for var, name in _ENV_OVERRIDES.items():
        if env.get(var):
            values[name] = _coerce(name, env[var])

    config = ClientConfig(**values)
    config.validate()
    return config
