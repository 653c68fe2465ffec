"""
Plugin system for the repository policy controller.

This package provides the store plugin architecture and the shared types
used by reconcilers.
"""

from plugins.base import (
    GetPolicyOutput,
    InstanceState,
    OperationResult,
    OperationStatus,
    PolicyInstance,
    SetPolicyOutput,
)
from plugins.registry import PluginRegistry, get_registry

__all__ = [
    "GetPolicyOutput",
    "InstanceState",
    "OperationResult",
    "OperationStatus",
    "PolicyInstance",
    "SetPolicyOutput",
    "PluginRegistry",
    "get_registry",
]
