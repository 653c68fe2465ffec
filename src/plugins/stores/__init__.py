"""
Policy store plugins package.

Store plugins talk to the remote service that holds repository policies.
"""

from plugins.stores.base import PolicyStore

__all__ = ["PolicyStore"]
