"""
Core plugin types and dataclasses.

This module contains shared types used by stores, the reconciler and the
controller.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class InstanceState(Enum):
    """Reconciliation state of a policy instance."""

    ABSENT = "absent"
    PRESENT = "present"
    DRIFTED = "drifted"


class OperationStatus(Enum):
    """Outcome of a reconciler operation."""

    OK = "ok"
    OK_ABSENT = "ok_absent"
    ERROR = "error"


@dataclass
class PolicyInstance:
    """
    One repository policy binding.

    ``key`` equals the remote repository name once the policy exists and is
    empty while it does not. ``registry_id`` is computed by the store and
    must be carried into every later update or delete.
    """

    key: str = ""
    repository_name: str = ""
    registry_id: Optional[str] = None
    policy_text: str = ""

    @property
    def exists(self) -> bool:
        return bool(self.key)

    def copy(self, **changes: Any) -> "PolicyInstance":
        return replace(self, **changes)

    def cleared(self) -> "PolicyInstance":
        """Return a copy with identity and all observed fields removed."""
        return PolicyInstance(repository_name=self.repository_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "repository_name": self.repository_name,
            "registry_id": self.registry_id,
            "policy_text": self.policy_text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PolicyInstance":
        return cls(
            key=data.get("key") or "",
            repository_name=data.get("repository_name") or "",
            registry_id=data.get("registry_id"),
            policy_text=data.get("policy_text") or "",
        )


def instance_state(
    instance: PolicyInstance,
    desired_policy: Optional[str],
    comparator: Callable[[str, str], bool],
) -> InstanceState:
    """
    Compute the state of an instance against a desired policy.

    Args:
        instance: The last observed instance
        desired_policy: Desired policy text, or None to only check existence
        comparator: Semantic policy equivalence function

    Returns:
        ABSENT without a key, DRIFTED if the desired policy differs from the
        observed one, PRESENT otherwise.
    """
    if not instance.exists:
        return InstanceState.ABSENT
    if desired_policy is not None and not comparator(
        desired_policy, instance.policy_text
    ):
        return InstanceState.DRIFTED
    return InstanceState.PRESENT


@dataclass
class OperationResult:
    """Standard result from a reconciler operation."""

    status: OperationStatus = OperationStatus.OK
    instance: PolicyInstance = field(default_factory=PolicyInstance)
    message: str = ""
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status is not OperationStatus.ERROR


@dataclass
class SetPolicyOutput:
    """Response of a successful set_policy call."""

    repository_name: str
    registry_id: Optional[str] = None


@dataclass
class GetPolicyOutput:
    """Response of a successful get_policy call."""

    repository_name: str
    registry_id: Optional[str] = None
    policy_text: str = ""
