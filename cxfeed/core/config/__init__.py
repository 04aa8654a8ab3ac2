"""Configuration management module."""

from cxfeed.core.config.settings import (
    DEFAULT_BASE_URL,
    ConfigManager,
    CxFeedConfig,
    DatasetConfig,
    LoggingConfig,
    RefreshConfig,
    UpstreamConfig,
    load_config_from_env,
)

__all__ = [
    "DEFAULT_BASE_URL",
    "ConfigManager",
    "CxFeedConfig",
    "DatasetConfig",
    "LoggingConfig",
    "RefreshConfig",
    "UpstreamConfig",
    "load_config_from_env",
]
