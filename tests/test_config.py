"""Unit tests for config.py - Configuration management."""

import os
from unittest.mock import patch

import config
from config import (
    Config,
    ControllerConfig,
    LoggingConfig,
    PluginConfig,
    RetryConfig,
    StoreConfig,
    get_config,
    load_config,
    reset_config,
)
from retry import RetryPolicy


class TestStoreConfig:
    """Tests for StoreConfig class."""

    def test_default_values(self):
        cfg = StoreConfig()
        assert cfg.plugin == "http"
        assert cfg.endpoint == "http://localhost:8080/v1"
        assert cfg.api_token == ""
        assert cfg.request_timeout == 30.0

    def test_from_env(self):
        env_vars = {
            "STORE_PLUGIN": "custom",
            "STORE_ENDPOINT": "https://registry.example.com/v2",
            "STORE_API_TOKEN": "s3cret",
            "STORE_REQUEST_TIMEOUT": "5.5",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = StoreConfig.from_env()
        assert cfg.plugin == "custom"
        assert cfg.endpoint == "https://registry.example.com/v2"
        assert cfg.api_token == "s3cret"
        assert cfg.request_timeout == 5.5

    def test_token_not_in_repr(self):
        """Test that the API token is not exposed in repr."""
        cfg = StoreConfig(api_token="s3cret")
        assert "s3cret" not in repr(cfg)

    def test_to_plugin_config(self):
        cfg = StoreConfig(endpoint="http://e", api_token="t", request_timeout=1.0)
        assert cfg.to_plugin_config() == {
            "endpoint": "http://e",
            "api_token": "t",
            "request_timeout": 1.0,
        }


class TestRetryConfig:
    """Tests for RetryConfig class."""

    def test_default_values(self):
        cfg = RetryConfig()
        assert cfg.timeout == 120.0
        assert cfg.min_delay == 0.5
        assert cfg.max_delay == 10.0
        assert cfg.jitter_factor == 0.1

    def test_from_env(self):
        env_vars = {"RETRY_TIMEOUT": "30", "RETRY_MAX_DELAY": "2"}
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = RetryConfig.from_env()
        assert cfg.timeout == 30.0
        assert cfg.max_delay == 2.0

    def test_to_policy(self):
        policy = RetryConfig(timeout=5, min_delay=1, max_delay=2).to_policy()
        assert policy == RetryPolicy(
            timeout=5, min_delay=1, max_delay=2, jitter_factor=0.1
        )


class TestControllerConfig:
    """Tests for ControllerConfig class."""

    def test_from_env_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            cfg = ControllerConfig.from_env()
        assert cfg == ControllerConfig()
        assert cfg.reconcile_interval == 60
        assert cfg.max_concurrent_reconciles == 5
        assert cfg.state_file == "repopolicy.state.yaml"
        assert cfg.manifest_file == "repopolicy.yaml"

    def test_from_env(self):
        env_vars = {
            "RECONCILE_INTERVAL": "15",
            "MAX_CONCURRENT_RECONCILES": "2",
            "STATE_FILE": "/var/lib/state.yaml",
            "MANIFEST_FILE": "/etc/policies.yaml",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = ControllerConfig.from_env()
        assert cfg.reconcile_interval == 15
        assert cfg.max_concurrent_reconciles == 2
        assert cfg.state_file == "/var/lib/state.yaml"
        assert cfg.manifest_file == "/etc/policies.yaml"


class TestLoggingConfig:
    def test_level_upper_cased(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "debug"}, clear=False):
            assert LoggingConfig.from_env().level == "DEBUG"


class TestPluginConfig:
    """Tests for PluginConfig class."""

    def test_from_env(self):
        env_vars = {"PLUGIN_CONFIGS": '{"http": {"request_timeout": 3}}'}
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = PluginConfig.from_env()
        assert cfg.get_plugin_config("http") == {"request_timeout": 3}
        assert cfg.get_plugin_config("other") == {}

    def test_from_env_invalid_json(self):
        """Test that invalid JSON results in empty configs."""
        with patch.dict(os.environ, {"PLUGIN_CONFIGS": "not json"}, clear=False):
            cfg = PluginConfig.from_env()
        assert cfg.plugin_configs == {}


class TestConfig:
    """Tests for main Config class."""

    def test_default(self):
        cfg = Config.default()
        assert isinstance(cfg.store, StoreConfig)
        assert isinstance(cfg.retry, RetryConfig)
        assert isinstance(cfg.controller, ControllerConfig)
        assert isinstance(cfg.logging, LoggingConfig)
        assert isinstance(cfg.plugins, PluginConfig)

    def test_store_plugin_config_applies_overrides(self):
        cfg = Config.default()
        cfg.plugins = PluginConfig(
            plugin_configs={"http": {"request_timeout": 3, "extra": True}}
        )

        plugin_config = cfg.store_plugin_config()

        assert plugin_config["endpoint"] == "http://localhost:8080/v1"
        assert plugin_config["request_timeout"] == 3
        assert plugin_config["extra"] is True


class TestConfigSingleton:
    """Tests for config singleton functions."""

    def setup_method(self):
        reset_config()

    def teardown_method(self):
        reset_config()

    def test_load_config(self):
        cfg = load_config()
        assert isinstance(cfg, Config)

    def test_singleton_returns_same_instance(self):
        assert get_config() is get_config()

    def test_reset_config(self):
        cfg1 = load_config()
        reset_config()
        assert config.config is None
        assert load_config() is not cfg1
