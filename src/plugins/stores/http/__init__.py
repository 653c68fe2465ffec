"""HTTP policy store plugin."""

from plugins.stores.http.client import HTTPPolicyStore

__all__ = ["HTTPPolicyStore"]
