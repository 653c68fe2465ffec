"""
Plugin Registry - Discovery and registration of store plugins.

This module provides the central registry for policy store plugins,
handling discovery, registration, and instantiation.
"""

import logging
from importlib.metadata import entry_points
from typing import Any, Dict, Optional, Type

from plugins.stores.base import PolicyStore

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "repopolicy.stores"


class PluginRegistry:
    """
    Central registry for store plugins.

    Handles discovery, registration, and instantiation of PolicyStore
    implementations.
    """

    def __init__(self):
        # Registered plugin classes (not instantiated)
        self._store_plugins: Dict[str, Type[PolicyStore]] = {}

        # Cached plugin metadata (name, version) to avoid repeated instantiation
        self._store_plugin_info: Dict[str, Dict[str, str]] = {}

        # Instantiated and initialized plugin instances
        self._store_instances: Dict[str, PolicyStore] = {}

        # Plugin configurations loaded from environment
        self._store_plugin_configs: Dict[str, Dict[str, Any]] = {}

    def register_store_plugin(self, plugin_class: Type[PolicyStore]) -> None:
        """
        Register a store plugin class.

        Args:
            plugin_class: The PolicyStore subclass to register
        """
        # Create temporary instance to get name/version (only once at registration)
        temp_instance = plugin_class()
        name = temp_instance.name
        version = temp_instance.version

        if name in self._store_plugins:
            logger.warning(f"Overwriting existing store plugin: {name}")

        self._store_plugins[name] = plugin_class
        self._store_plugin_info[name] = {"name": name, "version": version}
        self._store_plugin_configs[name] = plugin_class.load_config_from_env()
        logger.info(f"Registered store plugin: {name} v{version}")

    async def get_store_plugin(
        self, name: str, config: Optional[Dict[str, Any]] = None
    ) -> PolicyStore:
        """
        Get an initialized store plugin instance.

        The environment-loaded configuration is used as the base and the
        given config overrides it key by key.

        Args:
            name: The plugin name to retrieve
            config: Optional configuration overrides passed to initialize()

        Returns:
            An initialized PolicyStore instance

        Raises:
            ValueError: If the plugin name is not registered
        """
        if name not in self._store_plugins:
            available = ", ".join(self._store_plugins.keys()) or "none"
            raise ValueError(
                f"Unknown store plugin: {name}. Available plugins: {available}"
            )

        if name not in self._store_instances:
            plugin_config = dict(self._store_plugin_configs.get(name, {}))
            plugin_config.update(config or {})

            plugin = self._store_plugins[name]()
            await plugin.initialize(plugin_config)
            self._store_instances[name] = plugin
            logger.info(f"Initialized store plugin: {name}")

        return self._store_instances[name]

    def list_store_plugins(self) -> list[str]:
        """List all registered store plugin names."""
        return list(self._store_plugins.keys())

    def has_store_plugin(self, name: str) -> bool:
        """Check if a store plugin is registered."""
        return name in self._store_plugins

    def get_store_plugin_info(self, name: str) -> Optional[Dict[str, str]]:
        """
        Get information about a registered store plugin.

        Args:
            name: The plugin name

        Returns:
            Dictionary with 'name' and 'version', or None if not found
        """
        return self._store_plugin_info.get(name)

    def get_store_plugin_config(self, name: str) -> Dict[str, Any]:
        """
        Get the environment-loaded configuration for a store plugin.

        Args:
            name: The plugin name

        Returns:
            Dictionary of configuration values, or empty dict if not found
        """
        return self._store_plugin_configs.get(name, {})

    async def close(self) -> None:
        """Close every initialized store instance."""
        for name, plugin in list(self._store_instances.items()):
            await plugin.close()
            logger.debug(f"Closed store plugin: {name}")
        self._store_instances.clear()


# Global registry instance
_registry: Optional[PluginRegistry] = None


def get_registry() -> PluginRegistry:
    """Get the global plugin registry singleton."""
    global _registry
    if _registry is None:
        _registry = PluginRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_plugins() -> None:
    """
    Register the built-in store plugins and discover third-party stores
    via entry points.
    """
    registry = get_registry()

    try:
        from plugins.stores.http import HTTPPolicyStore

        registry.register_store_plugin(HTTPPolicyStore)
    except ImportError as e:
        logger.warning(f"Could not load HTTP store plugin: {e}")

    discovered = entry_points(group=ENTRY_POINT_GROUP)
    for ep in discovered:
        try:
            store_class = ep.load()
            registry.register_store_plugin(store_class)
        except Exception as e:
            logger.warning(f"Could not load store plugin {ep.name}: {e}")
