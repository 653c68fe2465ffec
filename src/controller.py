"""
Policy Controller - applies a manifest of desired policies.

Plays the desired-state-source role for the reconciler: it pairs each
manifest entry with the instance recorded in the state file, hands both to
the reconciler, and persists whatever instance comes back. Independent
policies are reconciled concurrently; a single policy is only ever driven
by one task at a time.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from config import Config, ControllerConfig
from errors import ManifestError, ReconcileError
from events import EventBus
from manifest import PolicySpec, load_manifest
from plugins.base import (
    InstanceState,
    OperationResult,
    OperationStatus,
    PolicyInstance,
    instance_state,
)
from plugins.reconcilers.repository_policy import RepositoryPolicyReconciler
from plugins.registry import PluginRegistry, get_registry
from state import StateFile

logger = logging.getLogger(__name__)


class PlanAction(Enum):
    """Change the controller would make for one policy."""

    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "noop"
    ERROR = "error"


@dataclass
class PlannedChange:
    """One line of a plan."""

    name: str
    action: PlanAction
    repository_name: str = ""
    message: str = ""


async def build_reconciler(
    config: Config,
    registry: Optional[PluginRegistry] = None,
    event_bus: Optional[EventBus] = None,
    shutdown_event: Optional[asyncio.Event] = None,
) -> RepositoryPolicyReconciler:
    """
    Build a reconciler wired to the configured store plugin.

    Args:
        config: Loaded configuration
        registry: Plugin registry with store plugins registered
        event_bus: Optional bus for lifecycle events
        shutdown_event: Optional event that aborts retry waits

    Returns:
        A RepositoryPolicyReconciler instance
    """
    registry = registry or get_registry()
    store = await registry.get_store_plugin(
        config.store.plugin, config.store_plugin_config()
    )
    return RepositoryPolicyReconciler(
        store=store,
        retry_policy=config.retry.to_policy(),
        event_bus=event_bus,
        shutdown_event=shutdown_event,
    )


class Controller:
    """
    Converges the policies named in a manifest.

    State is loaded from and saved to the StateFile around every operation.
    """

    def __init__(
        self,
        reconciler: RepositoryPolicyReconciler,
        state: StateFile,
        config: Optional[ControllerConfig] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ):
        self.reconciler = reconciler
        self.state = state
        self.config = config or ControllerConfig()
        self.semaphore = asyncio.Semaphore(self.config.max_concurrent_reconciles)
        self.running = False
        self._shutdown_event = shutdown_event or asyncio.Event()

    async def plan(
        self, specs: Sequence[PolicySpec], prune: bool = False
    ) -> List[PlannedChange]:
        """
        Compute the changes apply() would make, without changing anything.

        Args:
            specs: Desired policies
            prune: Also plan deletion of state entries missing from specs

        Returns:
            One PlannedChange per policy, in name order.

        Raises:
            ManifestError: If two policies would manage the same repository.
        """
        self.state.load()
        self._check_repositories(specs)

        async def plan_one(spec: PolicySpec) -> PlannedChange:
            async with self.semaphore:
                return await self._plan_spec(spec)

        changes = list(await asyncio.gather(*(plan_one(s) for s in specs)))

        if prune:
            wanted = {spec.name for spec in specs}
            for name in self.state.names():
                if name not in wanted:
                    stored = self.state.get(name)
                    changes.append(
                        PlannedChange(name, PlanAction.DELETE, stored.repository_name)
                    )

        return sorted(changes, key=lambda c: c.name)

    async def apply(
        self, specs: Sequence[PolicySpec], prune: bool = False
    ) -> Dict[str, OperationResult]:
        """
        Reconcile every desired policy and persist the results.

        Args:
            specs: Desired policies
            prune: Delete policies recorded in state but missing from specs

        Returns:
            Mapping of policy name to the reconciler's result.

        Raises:
            ManifestError: If two policies would manage the same repository.
        """
        self.state.load()
        self._check_repositories(specs)
        targets: Dict[str, Optional[PolicyInstance]] = {
            spec.name: spec.to_instance() for spec in specs
        }
        if prune:
            for name in self.state.names():
                targets.setdefault(name, None)

        start_time = time.time()
        try:
            results = await asyncio.gather(
                *(
                    self._reconcile_one(name, desired)
                    for name, desired in targets.items()
                )
            )
        finally:
            self.state.save()

        outcome = dict(zip(targets.keys(), results))
        failed = [name for name, result in outcome.items() if not result.ok]
        logger.info(
            f"Applied {len(outcome)} policies in {time.time() - start_time:.2f}s "
            f"({len(failed)} failed)"
        )
        return outcome

    async def refresh(self) -> Dict[str, OperationResult]:
        """Re-read every policy in state, dropping those gone remotely."""
        self.state.load()
        names = self.state.names()

        async def refresh_one(name: str) -> OperationResult:
            async with self.semaphore:
                result = await self.reconciler.read(self.state.get(name))
            if result.ok:
                self.state.put(name, result.instance)
            return result

        try:
            results = await asyncio.gather(*(refresh_one(n) for n in names))
        finally:
            self.state.save()
        return dict(zip(names, results))

    async def import_policy(self, name: str, identifier: str) -> OperationResult:
        """
        Start managing an existing remote policy under a local name.

        Args:
            name: Local policy name
            identifier: The remote repository name
        """
        self.state.load()
        owner = self._owner_of(identifier)
        if name in self.state or owner is not None:
            reason = f"policy {name} is already managed"
            if owner is not None and owner != name:
                reason = f"repository {identifier} is already managed as {owner}"
            error = ReconcileError("importing", identifier, ValueError(reason))
            logger.error(str(error))
            return OperationResult(
                status=OperationStatus.ERROR,
                instance=self.state.get(name),
                message=str(error),
                error=error,
            )

        result = await self.reconciler.import_instance(identifier)
        if result.status is OperationStatus.OK:
            self.state.put(name, result.instance)
            self.state.save()
            logger.info(f"Imported repository policy {identifier} as {name}")
        return result

    async def destroy(self, name: str) -> OperationResult:
        """Delete a managed policy and forget it."""
        self.state.load()
        if name not in self.state:
            message = f"Policy {name} is not managed"
            logger.error(message)
            return OperationResult(
                status=OperationStatus.ERROR,
                instance=PolicyInstance(),
                message=message,
                error=KeyError(name),
            )

        result = await self.reconciler.delete(self.state.get(name))
        if result.ok:
            self.state.remove(name)
            self.state.save()
        return result

    async def run(self, manifest_path: Union[str, Path], prune: bool = True) -> None:
        """Re-apply the manifest every reconcile_interval until stopped."""
        logger.info(f"Starting policy controller for {manifest_path}")
        self.running = True
        self._shutdown_event.clear()

        while self.running:
            try:
                manifest = load_manifest(manifest_path)
                await self.apply(manifest.policies, prune=prune)
            except ManifestError as e:
                logger.error(f"Skipping reconciliation cycle: {e}")
            except Exception as e:
                logger.error(f"Error in reconciliation loop: {e}", exc_info=True)

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=self.config.reconcile_interval
                )
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        """Stop the reconciliation loop."""
        logger.info("Stopping policy controller")
        self.running = False
        self._shutdown_event.set()

    def _owner_of(self, repository_name: str) -> Optional[str]:
        """Local name whose state entry manages repository_name, if any."""
        for name in self.state.names():
            stored = self.state.get(name)
            if (stored.repository_name or stored.key) == repository_name:
                return name
        return None

    def _check_repositories(self, specs: Sequence[PolicySpec]) -> None:
        # A repository is driven by at most one policy name at a time
        claimed: Dict[str, str] = {}
        for spec in specs:
            owner = claimed.setdefault(spec.repository, spec.name)
            if owner == spec.name:
                owner = self._owner_of(spec.repository) or spec.name
            if owner != spec.name:
                raise ManifestError(
                    f"repository {spec.repository} is already managed as {owner}"
                )

    async def _reconcile_one(
        self, name: str, desired: Optional[PolicyInstance]
    ) -> OperationResult:
        async with self.semaphore:
            result = await self.reconciler.reconcile(self.state.get(name), desired)

        self.state.put(name, result.instance)
        if result.ok:
            logger.info(f"Policy {name}: {result.status.value}")
        else:
            logger.error(f"Policy {name} failed: {result.message}")
        return result

    async def _plan_spec(self, spec: PolicySpec) -> PlannedChange:
        stored = self.state.get(spec.name)
        if not stored.exists:
            return PlannedChange(spec.name, PlanAction.CREATE, spec.repository)

        observed = await self.reconciler.read(stored)
        if observed.status is OperationStatus.ERROR:
            return PlannedChange(
                spec.name, PlanAction.ERROR, spec.repository, observed.message
            )
        if observed.status is OperationStatus.OK_ABSENT:
            return PlannedChange(
                spec.name,
                PlanAction.CREATE,
                spec.repository,
                "policy no longer exists remotely",
            )

        current = observed.instance
        if current.repository_name != spec.repository:
            return PlannedChange(
                spec.name,
                PlanAction.REPLACE,
                spec.repository,
                f"repository changes from {current.repository_name}",
            )

        drift = instance_state(current, spec.policy, self.reconciler.comparator)
        if drift is InstanceState.DRIFTED:
            return PlannedChange(spec.name, PlanAction.UPDATE, spec.repository)
        return PlannedChange(spec.name, PlanAction.NOOP, spec.repository)
