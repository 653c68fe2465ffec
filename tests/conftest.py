"""Pytest configuration and fixtures."""

import json
from typing import Any, Dict, List, Optional

import pytest

from errors import (
    INVALID_PARAMETER,
    INVALID_POLICY_MESSAGE,
    REPOSITORY_NOT_FOUND,
    REPOSITORY_POLICY_NOT_FOUND,
    RemoteStoreError,
)
from plugins.base import GetPolicyOutput, PolicyInstance, SetPolicyOutput
from plugins.reconcilers.repository_policy import RepositoryPolicyReconciler
from plugins.stores.base import PolicyStore
from retry import RetryPolicy

REGISTRY_ID = "123456789012"


def transient_error() -> RemoteStoreError:
    return RemoteStoreError(
        INVALID_PARAMETER, f"{INVALID_POLICY_MESSAGE}: principal does not exist"
    )


def repository_not_found(name: str = "web-app") -> RemoteStoreError:
    return RemoteStoreError(REPOSITORY_NOT_FOUND, f"repository {name} not found")


def policy_not_found(name: str = "web-app") -> RemoteStoreError:
    return RemoteStoreError(
        REPOSITORY_POLICY_NOT_FOUND, f"no policy for repository {name}"
    )


class FakePolicyStore(PolicyStore):
    """
    In-memory store with scriptable failures.

    Repositories must exist (``add_repository``) before a policy can be set.
    ``fail_next(method, *errors)`` queues errors returned by the next calls
    of a method; ``fail_always(method, error)`` makes every call fail.
    """

    def __init__(self):
        self.repositories: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self._queued: Dict[str, List[Exception]] = {}
        self._always: Dict[str, Exception] = {}

    @property
    def name(self) -> str:
        return "fake"

    @property
    def version(self) -> str:
        return "0.0.1"

    async def initialize(self, config: Dict[str, Any]) -> None:
        pass

    def add_repository(self, name: str, policy_text: Optional[str] = None) -> None:
        self.repositories[name] = {
            "registry_id": REGISTRY_ID,
            "policy_text": policy_text,
        }

    def fail_next(self, method: str, *errors: Exception) -> None:
        self._queued.setdefault(method, []).extend(errors)

    def fail_always(self, method: str, error: Exception) -> None:
        self._always[method] = error

    def calls_to(self, method: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == method]

    def _maybe_fail(self, method: str) -> None:
        if method in self._always:
            raise self._always[method]
        queued = self._queued.get(method)
        if queued:
            raise queued.pop(0)

    async def set_policy(self, repository_name, policy_text, registry_id=None):
        self.calls.append(("set_policy", repository_name, policy_text, registry_id))
        self._maybe_fail("set_policy")
        if repository_name not in self.repositories:
            raise repository_not_found(repository_name)
        self.repositories[repository_name]["policy_text"] = policy_text
        return SetPolicyOutput(
            repository_name=repository_name,
            registry_id=self.repositories[repository_name]["registry_id"],
        )

    async def get_policy(self, repository_name):
        self.calls.append(("get_policy", repository_name))
        self._maybe_fail("get_policy")
        repository = self.repositories.get(repository_name)
        if repository is None:
            raise repository_not_found(repository_name)
        if repository["policy_text"] is None:
            raise policy_not_found(repository_name)
        return GetPolicyOutput(
            repository_name=repository_name,
            registry_id=repository["registry_id"],
            policy_text=repository["policy_text"],
        )

    async def delete_policy(self, repository_name, registry_id=None):
        self.calls.append(("delete_policy", repository_name, registry_id))
        self._maybe_fail("delete_policy")
        repository = self.repositories.get(repository_name)
        if repository is None:
            raise repository_not_found(repository_name)
        if repository["policy_text"] is None:
            raise policy_not_found(repository_name)
        repository["policy_text"] = None


def make_policy(*actions: str, principal: str = "*") -> str:
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Sid": "AllowPull",
                    "Effect": "Allow",
                    "Principal": {"AWS": principal},
                    "Action": list(actions) or ["ecr-public:BatchGetImage"],
                }
            ],
        }
    )


@pytest.fixture
def store():
    """A fake store with one repository and no policy attached."""
    fake = FakePolicyStore()
    fake.add_repository("web-app")
    return fake


@pytest.fixture
def fast_retry():
    """Retry policy small enough for unit tests."""
    return RetryPolicy(timeout=0.5, min_delay=0.01, max_delay=0.05, jitter_factor=0)


@pytest.fixture
def reconciler(store, fast_retry):
    return RepositoryPolicyReconciler(store=store, retry_policy=fast_retry)


@pytest.fixture
def sample_policy():
    return make_policy("ecr-public:BatchGetImage", "ecr-public:GetDownloadUrlForLayer")


@pytest.fixture
def desired(sample_policy):
    return PolicyInstance(repository_name="web-app", policy_text=sample_policy)


@pytest.fixture
def sample_manifest(sample_policy):
    return {
        "policies": [
            {
                "name": "web",
                "repository": "web-app",
                "policy": json.loads(sample_policy),
            }
        ]
    }
