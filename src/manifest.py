"""
Manifest - desired repository policies loaded from YAML or JSON.

A manifest lists the policies that should exist:

    policies:
      - name: web
        repository: web-app
        policy:
          Version: "2012-10-17"
          Statement: [...]

``policy`` may be given as a mapping or as a JSON string.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, List, Union

import yaml
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from errors import ManifestError
from plugins.base import PolicyInstance
from validation import validate_policy_document

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9._-]*[a-z0-9])?$")
REPOSITORY_PATTERN = re.compile(
    r"^[a-z0-9]+(?:[._-][a-z0-9]+)*(?:/[a-z0-9]+(?:[._-][a-z0-9]+)*)*$"
)


class PolicySpec(BaseModel):
    """Desired state of one repository policy."""

    name: str = Field(..., description="Local name of the policy", examples=["web"])
    repository: str = Field(
        ..., description="Repository the policy is attached to", examples=["web-app"]
    )
    policy: str = Field(..., description="Policy document as JSON")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not NAME_PATTERN.match(v):
            raise ValueError(
                "name must be lowercase alphanumeric with '.', '_' or '-' separators"
            )
        return v

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, v: str) -> str:
        if not 2 <= len(v) <= 205 or not REPOSITORY_PATTERN.match(v):
            raise ValueError(f"invalid repository name: {v}")
        return v

    @field_validator("policy", mode="before")
    @classmethod
    def serialize_policy(cls, v: Any) -> Any:
        if isinstance(v, (dict, list)):
            return json.dumps(v, indent=2)
        return v

    @field_validator("policy")
    @classmethod
    def validate_policy(cls, v: str) -> str:
        is_valid, error = validate_policy_document(v)
        if not is_valid:
            raise ValueError(error)
        return v

    def to_instance(self) -> PolicyInstance:
        """Desired instance handed to the reconciler."""
        return PolicyInstance(repository_name=self.repository, policy_text=self.policy)


class Manifest(BaseModel):
    """A set of desired repository policies."""

    policies: List[PolicySpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_names(self) -> "Manifest":
        seen = set()
        repositories = {}
        for spec in self.policies:
            if spec.name in seen:
                raise ValueError(f"duplicate policy name: {spec.name}")
            seen.add(spec.name)
            # One repository has exactly one policy
            owner = repositories.setdefault(spec.repository, spec.name)
            if owner != spec.name:
                raise ValueError(
                    f"repository {spec.repository} is claimed by both "
                    f"{owner} and {spec.name}"
                )
        return self


def parse_manifest(data: Any) -> Manifest:
    """
    Validate a parsed manifest document.

    Raises:
        ManifestError: If the document is not a valid manifest.
    """
    if data is None:
        return Manifest()
    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        messages = []
        for error in e.errors():
            path = ".".join(str(p) for p in error["loc"]) or "(root)"
            messages.append(f"{path}: {error['msg']}")
        raise ManifestError("Invalid manifest: " + "; ".join(messages))


def load_manifest(path: Union[str, Path]) -> Manifest:
    """
    Load a manifest from a YAML or JSON file.

    Raises:
        ManifestError: If the file is missing, unparsable or invalid.
    """
    path = Path(path)
    try:
        with open(path, "r") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ManifestError(f"Manifest not found: {path}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ManifestError(f"Could not parse manifest {path}: {e}")

    manifest = parse_manifest(data)
    logger.debug(f"Loaded {len(manifest.policies)} policies from {path}")
    return manifest
