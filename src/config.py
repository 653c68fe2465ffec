"""
Configuration module for the repository policy controller.

Loads configuration from environment variables. Store plugins may receive
extra settings through the PLUGIN_CONFIGS JSON variable.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from retry import RetryPolicy


@dataclass
class StoreConfig:
    """Remote policy store configuration."""

    plugin: str = "http"
    endpoint: str = "http://localhost:8080/v1"
    api_token: str = field(default="", repr=False)  # Never log token
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            plugin=os.getenv("STORE_PLUGIN", "http"),
            endpoint=os.getenv("STORE_ENDPOINT", "http://localhost:8080/v1"),
            api_token=os.getenv("STORE_API_TOKEN", ""),
            request_timeout=float(os.getenv("STORE_REQUEST_TIMEOUT", "30")),
        )

    def to_plugin_config(self) -> Dict[str, Any]:
        """Settings passed to the store plugin's initialize()."""
        return {
            "endpoint": self.endpoint,
            "api_token": self.api_token,
            "request_timeout": self.request_timeout,
        }


@dataclass
class RetryConfig:
    """Retry budget for the eventual-consistency window."""

    timeout: float = 120.0  # 2 minutes
    min_delay: float = 0.5
    max_delay: float = 10.0
    jitter_factor: float = 0.1  # ±10% jitter

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            timeout=float(os.getenv("RETRY_TIMEOUT", "120")),
            min_delay=float(os.getenv("RETRY_MIN_DELAY", "0.5")),
            max_delay=float(os.getenv("RETRY_MAX_DELAY", "10")),
            jitter_factor=float(os.getenv("RETRY_JITTER_FACTOR", "0.1")),
        )

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout=self.timeout,
            min_delay=self.min_delay,
            max_delay=self.max_delay,
            jitter_factor=self.jitter_factor,
        )


@dataclass
class ControllerConfig:
    """Controller loop and desired-state file configuration."""

    reconcile_interval: int = 60  # seconds
    max_concurrent_reconciles: int = 5
    state_file: str = "repopolicy.state.yaml"
    manifest_file: str = "repopolicy.yaml"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            reconcile_interval=int(os.getenv("RECONCILE_INTERVAL", "60")),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            state_file=os.getenv("STATE_FILE", "repopolicy.state.yaml"),
            manifest_file=os.getenv("MANIFEST_FILE", "repopolicy.yaml"),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            format=os.getenv(
                "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            ),
        )


@dataclass
class PluginConfig:
    """Plugin system configuration."""

    # Plugin-specific configurations keyed by plugin name
    plugin_configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        # Load plugin configs from JSON environment variable
        plugin_configs = {}
        if os.getenv("PLUGIN_CONFIGS"):
            try:
                plugin_configs = json.loads(os.getenv("PLUGIN_CONFIGS"))
            except json.JSONDecodeError:
                pass

        return cls(plugin_configs=plugin_configs)

    def get_plugin_config(self, plugin_name: str) -> Dict[str, Any]:
        """Get configuration for a specific plugin."""
        return self.plugin_configs.get(plugin_name, {})


@dataclass
class Config:
    """Main configuration object."""

    store: StoreConfig
    retry: RetryConfig
    controller: ControllerConfig
    logging: LoggingConfig
    plugins: PluginConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            store=StoreConfig.from_env(),
            retry=RetryConfig.from_env(),
            controller=ControllerConfig.from_env(),
            logging=LoggingConfig.from_env(),
            plugins=PluginConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            store=StoreConfig(),
            retry=RetryConfig(),
            controller=ControllerConfig(),
            logging=LoggingConfig(),
            plugins=PluginConfig(),
        )

    def store_plugin_config(self) -> Dict[str, Any]:
        """Store settings with PLUGIN_CONFIGS overrides applied."""
        plugin_config = self.store.to_plugin_config()
        plugin_config.update(self.plugins.get_plugin_config(self.store.plugin))
        return plugin_config


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
