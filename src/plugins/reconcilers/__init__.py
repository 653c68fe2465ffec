"""
Reconciler package.

Reconcilers own the create/read/update/delete protocol of one kind of
remote object.
"""

from plugins.reconcilers.base import Reconciler
from plugins.reconcilers.repository_policy import RepositoryPolicyReconciler

__all__ = ["Reconciler", "RepositoryPolicyReconciler"]
