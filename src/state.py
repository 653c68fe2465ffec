"""
State File - persisted identity of managed policy instances.

The state file records, per local policy name, the last instance returned
by the reconciler. It is what lets the next run tell an existing policy
from a new one.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml

from errors import ManifestError
from plugins.base import PolicyInstance

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateFile:
    """YAML-backed mapping of policy name to PolicyInstance."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._instances: Dict[str, PolicyInstance] = {}

    def load(self) -> "StateFile":
        """
        Read the state file. A missing file is an empty state.

        Raises:
            ManifestError: If the file is unreadable or has an unknown version.
        """
        self._instances = {}
        if not self.path.exists():
            logger.debug(f"No state file at {self.path}, starting empty")
            return self

        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ManifestError(f"Could not parse state file {self.path}: {e}")
        if not isinstance(data, dict):
            raise ManifestError(f"State file {self.path} is not a mapping")

        version = data.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise ManifestError(
                f"Unsupported state file version {version} in {self.path}"
            )

        policies = data.get("policies") or {}
        if not isinstance(policies, dict):
            raise ManifestError(
                f"'policies' in state file {self.path} is not a mapping"
            )
        for name, raw in policies.items():
            if raw is not None and not isinstance(raw, dict):
                raise ManifestError(
                    f"State entry {name} in {self.path} is not a mapping"
                )
            self._instances[name] = PolicyInstance.from_dict(raw or {})

        logger.debug(f"Loaded {len(self._instances)} instances from {self.path}")
        return self

    def save(self) -> None:
        """Write the state file atomically."""
        data = {
            "version": STATE_VERSION,
            "policies": {
                name: instance.to_dict()
                for name, instance in sorted(self._instances.items())
            },
        }

        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

        logger.debug(f"Saved {len(self._instances)} instances to {self.path}")

    def get(self, name: str) -> PolicyInstance:
        """Return the stored instance, or an absent one."""
        return self._instances.get(name) or PolicyInstance()

    def put(self, name: str, instance: PolicyInstance) -> None:
        """Store an instance; absent instances are removed instead."""
        if instance.exists:
            self._instances[name] = instance
        else:
            self.remove(name)

    def remove(self, name: str) -> Optional[PolicyInstance]:
        return self._instances.pop(name, None)

    def names(self) -> List[str]:
        return sorted(self._instances)

    def __contains__(self, name: str) -> bool:
        return name in self._instances

    def __len__(self) -> int:
        return len(self._instances)
