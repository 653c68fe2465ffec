"""
HTTP Policy Store Plugin - Implements PolicyStore over a JSON HTTP API.

Each repository's policy lives at ``{endpoint}/repositories/{name}/policy``:
PUT attaches it, GET reads it, DELETE removes it. Error responses carry a
JSON body with the remote error code (``__type`` or ``code``) and a
``message``.
"""

import logging
import os
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp

from errors import RemoteStoreError
from plugins.base import GetPolicyOutput, SetPolicyOutput
from plugins.stores.base import PolicyStore

logger = logging.getLogger(__name__)


class HTTPPolicyStore(PolicyStore):
    """
    Store plugin that manages repository policies through an HTTP API.

    A new client session is opened per call; the store keeps no connection
    state between operations.
    """

    def __init__(self):
        self.endpoint: str = "http://localhost:8080/v1"
        self.api_token: Optional[str] = None
        self.request_timeout: float = 30.0

    @property
    def name(self) -> str:
        return "http"

    @property
    def version(self) -> str:
        return "1.0.0"

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """Load HTTP store configuration from environment variables."""
        return {
            "endpoint": os.getenv("STORE_ENDPOINT", "http://localhost:8080/v1"),
            "api_token": os.getenv("STORE_API_TOKEN", ""),
            "request_timeout": float(os.getenv("STORE_REQUEST_TIMEOUT", "30")),
        }

    async def initialize(self, config: Dict[str, Any]) -> None:
        """Initialize the plugin with configuration."""
        self.endpoint = config.get("endpoint", self.endpoint).rstrip("/")
        self.api_token = config.get("api_token") or None
        self.request_timeout = float(
            config.get("request_timeout", self.request_timeout)
        )

        if not self.api_token:
            logger.warning(
                "Store API token not configured. Set STORE_API_TOKEN environment "
                "variable."
            )

        logger.debug(
            f"HTTP policy store initialized: endpoint={self.endpoint}, "
            f"request_timeout={self.request_timeout}s"
        )

    async def set_policy(
        self,
        repository_name: str,
        policy_text: str,
        registry_id: Optional[str] = None,
    ) -> SetPolicyOutput:
        payload: Dict[str, Any] = {"policyText": policy_text}
        if registry_id:
            payload["registryId"] = registry_id

        logger.debug(f"Setting repository policy: {repository_name}")
        body = await self._request("PUT", repository_name, json=payload)

        return SetPolicyOutput(
            repository_name=body.get("repositoryName", repository_name),
            registry_id=body.get("registryId"),
        )

    async def get_policy(self, repository_name: str) -> GetPolicyOutput:
        logger.debug(f"Reading repository policy: {repository_name}")
        body = await self._request("GET", repository_name)

        return GetPolicyOutput(
            repository_name=body.get("repositoryName", repository_name),
            registry_id=body.get("registryId"),
            policy_text=body.get("policyText", ""),
        )

    async def delete_policy(
        self, repository_name: str, registry_id: Optional[str] = None
    ) -> None:
        params = {"registryId": registry_id} if registry_id else None

        logger.debug(f"Deleting repository policy: {repository_name}")
        await self._request("DELETE", repository_name, params=params)

    # Private helper methods

    def _get_headers(self) -> Dict[str, str]:
        """Get HTTP headers for store API requests."""
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _policy_url(self, repository_name: str) -> str:
        return f"{self.endpoint}/repositories/{quote(repository_name, safe='')}/policy"

    async def _request(
        self, method: str, repository_name: str, **kwargs: Any
    ) -> Dict[str, Any]:
        """Perform one API call and return its JSON body."""
        url = self._policy_url(repository_name)
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(
                method, url, headers=self._get_headers(), **kwargs
            ) as response:
                if response.status == 204:
                    return {}
                if 200 <= response.status < 300:
                    return await response.json()
                raise await self._error_from_response(response)

    async def _error_from_response(
        self, response: aiohttp.ClientResponse
    ) -> RemoteStoreError:
        """Translate an error response into a RemoteStoreError."""
        text = await response.text()
        try:
            body = await response.json(content_type=None)
        except ValueError:
            body = None

        if isinstance(body, dict):
            code = body.get("__type") or body.get("code") or f"HTTP{response.status}"
            # Some services prefix the code with a namespace: "ns#Code"
            code = code.rsplit("#", 1)[-1]
            message = body.get("message") or body.get("Message") or ""
        else:
            code = f"HTTP{response.status}"
            message = text

        logger.debug(f"Store returned {response.status}: {code} {message}")
        return RemoteStoreError(code, message, status=response.status)
