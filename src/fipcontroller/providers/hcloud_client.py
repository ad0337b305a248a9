"""Async Hetzner Cloud API client.

Covers the three calls the controller needs: listing servers, listing
floating IPs and assigning a floating IP to a server.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from fipcontroller.errors import APIError
from fipcontroller.logging import get_logger
from fipcontroller.models import FloatingIP, Server

logger = get_logger(__name__, component="hcloud_client")

DEFAULT_ENDPOINT = "https://api.hetzner.cloud/v1"
PER_PAGE = 50


@dataclass
class AssignResponse:
    """Raw outcome of an assign action."""

    status_code: int
    action_id: Optional[int] = None


class HetznerCloudClient:
    """Minimal async client for the Hetzner Cloud API."""

    def __init__(
        self,
        token: str,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            token: API token of the Hetzner Cloud project.
            endpoint: API base URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).

        Raises:
            ValueError: If the token is empty.
        """
        if not token:
            raise ValueError("Hetzner Cloud API token must not be empty")

        self.token = token
        self.endpoint = endpoint.rstrip("/")
        self.timeout = httpx.Timeout(timeout)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.endpoint,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Content-Type": "application/json",
                    "User-Agent": "fip-controller",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HetznerCloudClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            raise APIError(f"{method} {path} failed: {e}") from e

        if response.is_success:
            return response

        error_code = None
        message = response.text or response.reason_phrase
        try:
            error = response.json().get("error") or {}
            error_code = error.get("code")
            message = error.get("message", message)
        except (ValueError, AttributeError):
            pass

        raise APIError(
            f"{method} {path} returned HTTP {response.status_code}: {message}",
            status_code=response.status_code,
            error_code=error_code,
        )

    async def _list(self, path: str, key: str) -> List[Dict[str, Any]]:
        """Fetch every page of a list endpoint."""
        items: List[Dict[str, Any]] = []
        page: Optional[int] = 1

        while page is not None:
            response = await self._request("GET", path, params={"page": page, "per_page": PER_PAGE})
            try:
                body = response.json()
            except ValueError as e:
                raise APIError(f"GET {path} returned invalid JSON") from e

            items.extend(body.get(key) or [])
            pagination = (body.get("meta") or {}).get("pagination") or {}
            page = pagination.get("next_page")

        return items

    async def list_servers(self) -> List[Server]:
        """List all servers of the project."""
        items = await self._list("/servers", "servers")
        return [Server.from_api_response(item) for item in items]

    async def list_floating_ips(self) -> List[FloatingIP]:
        """List all floating IPs of the project."""
        items = await self._list("/floating_ips", "floating_ips")
        return [FloatingIP.from_api_response(item) for item in items]

    async def assign_floating_ip(self, floating_ip_id: int, server_id: int) -> AssignResponse:
        """Assign a floating IP to a server.

        Returns:
            The status code and action id. Any 2xx status is returned as is;
            the caller decides which one counts as success.

        Raises:
            APIError: On transport failure or a non-2xx status.
        """
        response = await self._request(
            "POST",
            f"/floating_ips/{floating_ip_id}/actions/assign",
            json={"server": server_id},
        )

        action_id = None
        try:
            action_id = (response.json().get("action") or {}).get("id")
        except (ValueError, AttributeError):
            pass

        logger.debug(
            "floating_ip_assign_called",
            floating_ip_id=floating_ip_id,
            server_id=server_id,
            status_code=response.status_code,
        )
        return AssignResponse(status_code=response.status_code, action_id=action_id)
