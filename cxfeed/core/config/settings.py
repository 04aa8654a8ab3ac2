"""Configuration management for a cxfeed run."""

import os
import tomllib
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from cxfeed import __version__
from cxfeed.core.exceptions import ConfigurationError

DEFAULT_BASE_URL = "https://rest.fnar.net"
DEFAULT_CONFIG_PATH = Path("cxfeed.toml")


@dataclass
class UpstreamConfig:
    """Market-data API settings."""

    base_url: str = DEFAULT_BASE_URL
    history_timeout: float = 3.0  # exceeding it means the upstream is rate limiting us
    request_timeout: float = 30.0
    throttle_interval: float = 1.0
    user_agent: str = f"cxfeed/{__version__}"

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ConfigurationError("base_url cannot be empty", source="upstream.base_url")
        if self.history_timeout <= 0:
            raise ConfigurationError("history_timeout must be positive", source="upstream.history_timeout")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive", source="upstream.request_timeout")
        if self.throttle_interval < 0:
            raise ConfigurationError("throttle_interval must be non-negative", source="upstream.throttle_interval")


@dataclass
class DatasetConfig:
    """Locations of the persisted dataset and its tabular export."""

    json_path: str = "all.json"
    csv_path: str = "all.csv"


@dataclass
class RefreshConfig:
    """Staleness policy of the refresh loop."""

    stale_after_hours: float = 24.0
    primary_interval: str = "DAY_ONE"

    def __post_init__(self) -> None:
        if self.stale_after_hours <= 0:
            raise ConfigurationError("stale_after_hours must be positive", source="refresh.stale_after_hours")


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    file: str | None = None
    serialize: bool = True


@dataclass
class CxFeedConfig:
    """Top-level cxfeed configuration."""

    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "CxFeedConfig":
        """Build a configuration from nested section dictionaries."""
        try:
            return cls(
                upstream=UpstreamConfig(**config_dict.get("upstream", {})),
                dataset=DatasetConfig(**config_dict.get("dataset", {})),
                refresh=RefreshConfig(**config_dict.get("refresh", {})),
                logging=LoggingConfig(**config_dict.get("logging", {})),
            )
        except TypeError as exc:
            raise ConfigurationError(f"Unknown configuration key: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        """Convert to nested dictionaries."""
        return {
            "upstream": asdict(self.upstream),
            "dataset": asdict(self.dataset),
            "refresh": asdict(self.refresh),
            "logging": asdict(self.logging),
        }


class ConfigManager:
    """Loads configuration from an optional TOML file plus environment overrides."""

    def __init__(self, config_path: Path | None = None, environ: dict[str, str] | None = None):
        """Initialise the manager.

        Args:
            config_path: TOML file to read; ``cxfeed.toml`` in the working
                directory when omitted. A missing file means defaults.
            environ: Environment mapping, ``os.environ`` when omitted.
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self.environ = os.environ if environ is None else environ
        self.config = self._load_config()

    def _load_config(self) -> CxFeedConfig:
        config_dict: dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    config_dict = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as exc:
                raise ConfigurationError(
                    f"Failed to load config from {self.config_path}: {exc}",
                    source=str(self.config_path),
                ) from exc

        _deep_update(config_dict, load_config_from_env(self.environ))
        return CxFeedConfig.from_dict(config_dict)

    def get_config(self) -> CxFeedConfig:
        """Return the resolved configuration."""
        return self.config

    def update_config(self, **updates: Any) -> None:
        """Apply nested overrides, e.g. ``update_config(dataset={"json_path": "x.json"})``."""
        config_dict = self.config.to_dict()
        _deep_update(config_dict, updates)
        self.config = CxFeedConfig.from_dict(config_dict)


def _deep_update(target: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    for key, value in updates.items():
        if isinstance(value, dict):
            target[key] = _deep_update(dict(target.get(key, {})), value)
        else:
            target[key] = value
    return target


_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "CXFEED_BASE_URL": ("upstream", "base_url"),
    "CXFEED_HISTORY_TIMEOUT": ("upstream", "history_timeout"),
    "CXFEED_THROTTLE_INTERVAL": ("upstream", "throttle_interval"),
    "CXFEED_DATASET_PATH": ("dataset", "json_path"),
    "CXFEED_EXPORT_PATH": ("dataset", "csv_path"),
    "CXFEED_STALE_AFTER_HOURS": ("refresh", "stale_after_hours"),
    "CXFEED_LOG_LEVEL": ("logging", "level"),
    "CXFEED_LOG_FILE": ("logging", "file"),
}

_SECTION_TYPES = {
    "upstream": UpstreamConfig,
    "dataset": DatasetConfig,
    "refresh": RefreshConfig,
    "logging": LoggingConfig,
}


def load_config_from_env(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Read ``CXFEED_*`` overrides into nested section dictionaries."""
    env = os.environ if environ is None else environ
    config: dict[str, Any] = {}

    for variable, (section, key) in _ENV_OVERRIDES.items():
        raw = env.get(variable)
        if raw is None:
            continue
        field_type = {f.name: f.type for f in fields(_SECTION_TYPES[section])}[key]
        if field_type in (float, "float"):
            try:
                value: Any = float(raw)
            except ValueError as exc:
                raise ConfigurationError(f"{variable} must be a number, got {raw!r}", source=variable) from exc
        else:
            value = raw
        config.setdefault(section, {})[key] = value

    return config
