"""
Repository Policy Reconciler - converges a repository's access policy.

Create and update go through a bounded retry loop because the permission
system behind the store is eventually consistent: a principal created
moments earlier can make set_policy fail with an "invalid policy" error
until it has propagated. Read and delete treat a missing repository or a
missing policy as the absent state rather than as a failure.
"""

import asyncio
import logging
from typing import Optional

from errors import (
    ErrorClassifier,
    ErrorKind,
    ReconcileError,
    RetryTimeoutError,
    classify_error,
    is_not_found,
)
from events import EventBus, EventType, PolicyEvent
from plugins.base import (
    OperationResult,
    OperationStatus,
    PolicyInstance,
    SetPolicyOutput,
)
from plugins.reconcilers.base import Reconciler
from plugins.stores.base import PolicyStore
from policy import PolicyComparator, policies_equivalent
from retry import RetryPolicy, retry

logger = logging.getLogger(__name__)


class RepositoryPolicyReconciler(Reconciler):
    """
    Reconciler for the policy attached to a remote repository.

    The store handle, error classifier and policy comparator are injected;
    the reconciler keeps no per-instance state, so one reconciler can serve
    many instances concurrently as long as each instance is driven by a
    single caller at a time.
    """

    def __init__(
        self,
        store: PolicyStore,
        classifier: ErrorClassifier = classify_error,
        comparator: PolicyComparator = policies_equivalent,
        retry_policy: Optional[RetryPolicy] = None,
        event_bus: Optional[EventBus] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ):
        self.store = store
        self.classifier = classifier
        self.comparator = comparator
        self.retry_policy = retry_policy or RetryPolicy()
        self.event_bus = event_bus
        self.shutdown_event = shutdown_event

    @property
    def name(self) -> str:
        return "repository_policy"

    async def create(self, desired: PolicyInstance) -> OperationResult:
        if not desired.repository_name:
            return self._failed(
                "creating", desired, ValueError("repository is required")
            )
        if not desired.policy_text:
            return self._failed("creating", desired, ValueError("policy is required"))
        if desired.exists:
            return self._failed(
                "creating",
                desired,
                ValueError(f"policy already exists with key {desired.key}"),
            )

        logger.debug(f"Creating repository policy: {desired.repository_name}")
        try:
            out = await self._set_policy(desired.repository_name, desired.policy_text)
        except Exception as e:
            return self._failed("creating", desired, e)

        logger.debug(f"Repository policy created: {out.repository_name}")
        created = desired.copy(key=out.repository_name, registry_id=out.registry_id)

        result = await self.read(created)
        if result.status is OperationStatus.OK:
            await self._publish(EventType.CREATED, result.instance)
        elif result.status is OperationStatus.ERROR:
            # The policy exists remotely; keep its identity for the caller.
            result.instance = created
        return result

    async def read(self, instance: PolicyInstance) -> OperationResult:
        if not instance.exists:
            return OperationResult(
                status=OperationStatus.OK_ABSENT, instance=instance.cleared()
            )

        logger.debug(f"Reading repository policy {instance.key}")
        try:
            out = await self.store.get_policy(instance.key)
        except Exception as e:
            kind = self.classifier(e)
            if not is_not_found(kind):
                return self._failed("reading", instance, e)

            message = f"Repository policy {instance.key} not found ({kind.value})"
            logger.warning(f"{message}, removing from state")
            await self._publish(EventType.DRIFTED, instance, message)
            return OperationResult(
                status=OperationStatus.OK_ABSENT,
                instance=instance.cleared(),
                message=message,
            )

        logger.debug(f"Received repository policy {out.repository_name}")
        observed = instance.copy(
            key=out.repository_name,
            repository_name=out.repository_name,
            registry_id=out.registry_id,
            policy_text=out.policy_text,
        )
        return OperationResult(status=OperationStatus.OK, instance=observed)

    async def update(
        self, instance: PolicyInstance, desired: PolicyInstance
    ) -> OperationResult:
        if not instance.exists:
            return self._failed(
                "updating", instance, ValueError("policy does not exist")
            )

        repository_name = instance.repository_name or instance.key
        if desired.repository_name and desired.repository_name != repository_name:
            return self._failed(
                "updating",
                instance,
                ValueError(
                    f"changing repository from {repository_name} to "
                    f"{desired.repository_name} requires replacement"
                ),
            )

        if self.comparator(desired.policy_text, instance.policy_text):
            logger.debug(f"Repository policy {instance.key} unchanged")
            return OperationResult(status=OperationStatus.OK, instance=instance)

        logger.debug(f"Updating repository policy: {repository_name}")
        try:
            out = await self._set_policy(
                repository_name, desired.policy_text, instance.registry_id
            )
        except Exception as e:
            return self._failed("updating", instance, e)

        # Trust the write response; no read-back
        updated = instance.copy(
            key=out.repository_name or repository_name,
            repository_name=repository_name,
            registry_id=out.registry_id or instance.registry_id,
            policy_text=desired.policy_text,
        )
        await self._publish(EventType.MODIFIED, updated)
        return OperationResult(status=OperationStatus.OK, instance=updated)

    async def delete(self, instance: PolicyInstance) -> OperationResult:
        if not instance.exists:
            return OperationResult(
                status=OperationStatus.OK_ABSENT, instance=instance.cleared()
            )

        logger.debug(f"Deleting repository policy {instance.key}")
        try:
            await self.store.delete_policy(instance.key, instance.registry_id)
        except Exception as e:
            kind = self.classifier(e)
            if not is_not_found(kind):
                return self._failed("deleting", instance, e)

            message = f"Repository policy {instance.key} already absent"
            logger.info(message)
            return OperationResult(
                status=OperationStatus.OK_ABSENT,
                instance=instance.cleared(),
                message=message,
            )

        logger.debug(f"Repository policy {instance.key} deleted.")
        await self._publish(EventType.DELETED, instance)
        return OperationResult(status=OperationStatus.OK, instance=instance.cleared())

    async def import_instance(self, identifier: str) -> OperationResult:
        result = await self.read(PolicyInstance(key=identifier))
        if result.status is OperationStatus.OK_ABSENT:
            return self._failed(
                "importing",
                PolicyInstance(),
                ValueError(f"cannot import non-existent remote object {identifier}"),
            )
        if result.status is OperationStatus.OK:
            await self._publish(EventType.IMPORTED, result.instance)
        return result

    async def reconcile(
        self, instance: PolicyInstance, desired: Optional[PolicyInstance]
    ) -> OperationResult:
        if desired is None:
            return await self.delete(instance)

        fresh = PolicyInstance(
            repository_name=desired.repository_name, policy_text=desired.policy_text
        )
        if not instance.exists:
            return await self.create(fresh)

        refreshed = await self.read(instance)
        if refreshed.status is OperationStatus.ERROR:
            return refreshed
        if refreshed.status is OperationStatus.OK_ABSENT:
            logger.info(f"Recreating repository policy {desired.repository_name}")
            return await self.create(fresh)

        current = refreshed.instance
        if desired.repository_name != current.repository_name:
            logger.info(
                f"Replacing repository policy {current.key} "
                f"(repository {current.repository_name} -> {desired.repository_name})"
            )
            deleted = await self.delete(current)
            if not deleted.ok:
                return deleted
            return await self.create(fresh)

        return await self.update(current, desired)

    # Private helper methods

    def _is_retryable(self, error: BaseException) -> bool:
        return self.classifier(error) is ErrorKind.TRANSIENT

    async def _set_policy(
        self,
        repository_name: str,
        policy_text: str,
        registry_id: Optional[str] = None,
    ) -> SetPolicyOutput:
        """set_policy under the retry policy, with one last attempt on timeout."""

        async def attempt() -> SetPolicyOutput:
            return await self.store.set_policy(
                repository_name, policy_text, registry_id
            )

        try:
            return await retry(
                attempt, self._is_retryable, self.retry_policy, self.shutdown_event
            )
        except RetryTimeoutError as e:
            logger.warning(
                f"Retry budget exhausted for {repository_name} ({e}); "
                f"making a final attempt"
            )
            return await attempt()

    def _failed(
        self, operation: str, instance: PolicyInstance, cause: BaseException
    ) -> OperationResult:
        error = ReconcileError(
            operation, instance.repository_name or instance.key, cause
        )
        error.__cause__ = cause
        logger.error(str(error))
        return OperationResult(
            status=OperationStatus.ERROR,
            instance=instance,
            message=str(error),
            error=error,
        )

    async def _publish(
        self, event_type: EventType, instance: PolicyInstance, message: str = ""
    ) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(
            PolicyEvent.from_instance(event_type, instance, message)
        )
