"""
Policy Store Base - Abstract interface for remote repository policy APIs.

A store is a thin client for the service that holds repository policies.
It performs exactly one remote call per method and never retries; failures
reported by the service are raised as errors.RemoteStoreError so the
reconciler can classify them.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from plugins.base import GetPolicyOutput, SetPolicyOutput


class PolicyStore(ABC):
    """
    Abstract base class for policy store plugins.

    Store plugins expose set/get/delete for the policy attached to a named
    repository, optionally scoped by a registry id.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this plugin (e.g., 'http')."""
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        """Plugin version string."""
        pass

    @abstractmethod
    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the plugin with configuration.

        Called once when the plugin is loaded.

        Args:
            config: Plugin-specific configuration dictionary
        """
        pass

    @abstractmethod
    async def set_policy(
        self,
        repository_name: str,
        policy_text: str,
        registry_id: Optional[str] = None,
    ) -> SetPolicyOutput:
        """
        Attach or replace the policy of a repository.

        Args:
            repository_name: The repository the policy belongs to
            policy_text: The policy document
            registry_id: Registry scope, once known

        Returns:
            SetPolicyOutput with the confirmed repository name and registry id.
        """
        pass

    @abstractmethod
    async def get_policy(self, repository_name: str) -> GetPolicyOutput:
        """
        Fetch the policy currently attached to a repository.

        Args:
            repository_name: The repository to look up

        Returns:
            GetPolicyOutput with the observed values.
        """
        pass

    @abstractmethod
    async def delete_policy(
        self, repository_name: str, registry_id: Optional[str] = None
    ) -> None:
        """
        Remove the policy attached to a repository.

        Args:
            repository_name: The repository whose policy is removed
            registry_id: Registry scope, once known
        """
        pass

    async def close(self) -> None:
        """Release any connections held by the store."""
        return None

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """
        Load plugin-specific configuration from environment variables.

        Override this method in subclasses to define how the plugin
        loads its configuration from the environment.

        Returns:
            Dictionary of configuration values for this plugin.
        """
        return {}
