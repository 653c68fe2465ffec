"""
Reconciler Base - Abstract interface for declarative resource reconcilers.

A reconciler owns the create/read/update/delete protocol of one kind of
remote object. It is driven by a desired-state source (the controller) and
reports every outcome as an OperationResult instead of raising.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from plugins.base import OperationResult, PolicyInstance

logger = logging.getLogger(__name__)


class Reconciler(ABC):
    """
    Abstract base class for reconcilers.

    Implementations never mutate the instance they are given; the returned
    OperationResult carries the new instance record.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this reconciler."""
        pass

    @abstractmethod
    async def create(self, desired: PolicyInstance) -> OperationResult:
        """
        Create the remote object described by desired.

        Args:
            desired: Desired field values; must not have a key yet.

        Returns:
            OperationResult with the created instance.
        """
        pass

    @abstractmethod
    async def read(self, instance: PolicyInstance) -> OperationResult:
        """
        Refresh an instance from the remote object.

        Args:
            instance: The instance to refresh.

        Returns:
            OperationResult with observed values, OK_ABSENT when the remote
            object no longer exists.
        """
        pass

    @abstractmethod
    async def update(
        self, instance: PolicyInstance, desired: PolicyInstance
    ) -> OperationResult:
        """
        Converge an existing remote object toward desired.

        Args:
            instance: The last observed instance.
            desired: Desired field values.

        Returns:
            OperationResult with the updated instance.
        """
        pass

    @abstractmethod
    async def delete(self, instance: PolicyInstance) -> OperationResult:
        """
        Remove the remote object.

        Args:
            instance: The instance to delete.

        Returns:
            OperationResult with a cleared instance.
        """
        pass

    async def import_instance(self, identifier: str) -> OperationResult:
        """
        Adopt an existing remote object by its external identifier.

        Args:
            identifier: The remote object's identifier.

        Returns:
            OperationResult from reading the synthesized instance.
        """
        return await self.read(PolicyInstance(key=identifier))

    @abstractmethod
    async def reconcile(
        self, instance: PolicyInstance, desired: Optional[PolicyInstance]
    ) -> OperationResult:
        """
        Converge one instance toward desired state.

        Args:
            instance: The last persisted instance (possibly absent).
            desired: Desired field values, or None if the object should not
                exist.

        Returns:
            OperationResult of the last operation performed.
        """
        pass
