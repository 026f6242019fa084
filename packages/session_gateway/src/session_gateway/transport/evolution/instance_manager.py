"""
Evolution API Instance Manager

Manages Evolution API instances (create, connect, logout, delete) and
performs the authenticated HTTP calls used by EvolutionTransport.

One manager (and one HTTP connection pool) is shared by every tenant;
each tenant maps to one instance identified by instance_name.
"""

import logging
from typing import Any

import httpx

from session_gateway.errors import TransportFailure

logger = logging.getLogger(__name__)

# Events the gateway needs delivered to its webhook
WEBHOOK_EVENTS = [
    "QRCODE_UPDATED",
    "CONNECTION_UPDATE",
    "MESSAGES_UPSERT",
    "LOGOUT_INSTANCE",
]


class EvolutionInstanceManager:
    """
    Manages Evolution API instances.

    Each tenant can have one Evolution instance identified by instance_name.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30.0,
    ):
        """
        Initialize instance manager.

        Args:
            api_url: Base URL of Evolution API
            api_key: API key for authentication
            timeout: HTTP request timeout
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Content-Type": "application/json",
                    "apikey": self.api_key,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an authenticated API request.

        Raises:
            TransportFailure: HTTP error status or network failure. code is
                the HTTP status (or "HTTP_ERROR"), details the decoded body.
        """
        client = await self._get_client()
        url = f"{self.api_url}{endpoint}"

        try:
            response = await client.request(method.upper(), url, json=json_data, params=params)
        except httpx.RequestError as e:
            logger.error(f"HTTP request failed: {e}", extra={"endpoint": endpoint})
            raise TransportFailure(
                message=f"HTTP request failed: {e}",
                code="HTTP_ERROR",
                retryable=True,
            ) from e

        try:
            response_data = response.json()
        except ValueError:
            response_data = {"raw": response.text}

        if response.status_code >= 400:
            error = "Unknown error"
            if isinstance(response_data, dict):
                error = (
                    response_data.get("error")
                    or response_data.get("message")
                    or error
                )
                nested = response_data.get("response")
                if isinstance(nested, dict) and nested.get("message"):
                    error = f"{error}: {nested['message']}"
            raise TransportFailure(
                message=f"API error: {error}",
                code=str(response.status_code),
                details=response_data if isinstance(response_data, dict) else {"body": response_data},
                retryable=response.status_code >= 500,
            )

        return response_data

    async def create_instance(
        self,
        instance_name: str,
        webhook_url: str | None = None,
        qrcode: bool = True,
        integration: str = "WHATSAPP-BAILEYS",
    ) -> dict[str, Any]:
        """
        Create a new Evolution API instance.

        Args:
            instance_name: Unique name for the instance
            webhook_url: Where Evolution should deliver instance events
            qrcode: Whether to return QR code for connection
            integration: Integration type (WHATSAPP-BAILEYS, etc)

        Returns:
            Instance creation response with QR code if requested
        """
        payload: dict[str, Any] = {
            "instanceName": instance_name,
            "qrcode": qrcode,
            "integration": integration,
        }

        if webhook_url:
            payload["webhook"] = {
                "url": webhook_url,
                "byEvents": False,
                "base64": False,
                "events": WEBHOOK_EVENTS,
            }

        return await self.request("POST", "/instance/create", payload)

    async def connect_instance(self, instance_name: str) -> dict[str, Any]:
        """
        Connect an instance (generates a fresh QR code when not paired).

        Returns:
            Connection response: QR fields, or the instance state when
            already connected
        """
        return await self.request("GET", f"/instance/connect/{instance_name}")

    async def fetch_instance(self, instance_name: str) -> dict[str, Any]:
        """
        Get status of an instance.

        Returns:
            Instance information (state, owner JID...), empty when unknown
        """
        response = await self.request(
            "GET", "/instance/fetchInstances", params={"instanceName": instance_name}
        )
        instances = response if isinstance(response, list) else response.get("instance", [])

        for instance in instances:
            # v1 nests the fields under "instance", v2 returns them flat
            info = instance.get("instance", instance)
            if info.get("instanceName", info.get("name")) == instance_name:
                return info

        return {}

    async def logout_instance(self, instance_name: str) -> None:
        """Logout/disconnect an instance."""
        await self.request("DELETE", f"/instance/logout/{instance_name}")

    async def delete_instance(self, instance_name: str) -> bool:
        """
        Delete an instance together with its stored credentials.

        Returns:
            True if successful
        """
        try:
            await self.request("DELETE", f"/instance/delete/{instance_name}")
            return True
        except TransportFailure as e:
            logger.error(f"Failed to delete instance: {e}", extra={"instance": instance_name})
            return False
