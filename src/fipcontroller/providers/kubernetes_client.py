"""Async Kubernetes API client.

Only the resources the controller touches are covered: nodes (cluster
membership) and coordination leases (leader election).
"""

import os
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from fipcontroller.errors import APIError, ClientInitializationError
from fipcontroller.logging import get_logger
from fipcontroller.models import ClusterMember

logger = get_logger(__name__, component="kubernetes_client")

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
LEASES_PATH = "/apis/coordination.k8s.io/v1/namespaces/{namespace}/leases"


@dataclass
class K8sConfig:
    """Kubernetes API connection settings."""

    api_server: str
    token: Optional[str] = None
    certificate_authority: Optional[str] = None
    insecure_skip_tls_verify: bool = False
    timeout: float = 30.0

    @classmethod
    def in_cluster(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        service_account_dir: Path = SERVICE_ACCOUNT_DIR,
    ) -> "K8sConfig":
        """Build settings from the pod's service account.

        Raises:
            ClientInitializationError: If not running inside a cluster.
        """
        environ = os.environ if environ is None else environ
        host = environ.get("KUBERNETES_SERVICE_HOST")
        port = environ.get("KUBERNETES_SERVICE_PORT", "443")
        if not host:
            raise ClientInitializationError(
                "KUBERNETES_SERVICE_HOST is not set; not running in a cluster",
                client="kubernetes",
            )

        token_file = service_account_dir / "token"
        ca_file = service_account_dir / "ca.crt"
        if not token_file.exists():
            raise ClientInitializationError(
                f"service account token not found: {token_file}",
                client="kubernetes",
            )

        if ":" in host:
            host = f"[{host}]"

        return cls(
            api_server=f"https://{host}:{port}",
            token=token_file.read_text().strip(),
            certificate_authority=str(ca_file) if ca_file.exists() else None,
        )


class KubernetesClient:
    """Kubernetes API client."""

    def __init__(
        self,
        config: K8sConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            config: Kubernetes configuration.
            transport: Optional httpx transport (used by tests).
        """
        self.config = config
        self._transport = transport
        self._ssl_context = self._create_ssl_context()
        self._client: Optional[httpx.AsyncClient] = None

    def _create_ssl_context(self) -> Union[ssl.SSLContext, bool]:
        """Create SSL context for API calls."""
        if self.config.insecure_skip_tls_verify:
            return False

        context = ssl.create_default_context()
        if self.config.certificate_authority:
            context.load_verify_locations(cafile=self.config.certificate_authority)
        return context

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.config.token:
                headers["Authorization"] = f"Bearer {self.config.token}"

            self._client = httpx.AsyncClient(
                base_url=self.config.api_server.rstrip("/"),
                timeout=httpx.Timeout(self.config.timeout),
                headers=headers,
                verify=self._ssl_context,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "KubernetesClient":
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

        reason = None
        message = response.text or response.reason_phrase
        try:
            status = response.json()
            reason = status.get("reason")
            message = status.get("message", message)
        except (ValueError, AttributeError):
            pass

        raise APIError(
            f"{method} {path} returned HTTP {response.status_code}: {message}",
            status_code=response.status_code,
            error_code=reason,
        )

    async def _request_json(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a request and decode its JSON object body."""
        response = await self._request(method, path, params=params, json=json)
        try:
            body = response.json()
        except ValueError as e:
            raise APIError(f"{method} {path} returned invalid JSON") from e
        if not isinstance(body, dict):
            raise APIError(f"{method} {path} returned {type(body).__name__}, expected an object")
        return body

    # Node operations

    async def list_nodes(self) -> List[ClusterMember]:
        """List every node of the cluster."""
        members: List[ClusterMember] = []
        params: Dict[str, Any] = {"limit": 500}

        while True:
            body = await self._request_json("GET", "/api/v1/nodes", params=params)
            members.extend(ClusterMember.from_api_response(item) for item in body.get("items", []))

            continue_token = (body.get("metadata") or {}).get("continue")
            if not continue_token:
                return members
            params = {"limit": 500, "continue": continue_token}

    # Lease operations

    async def get_lease(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        """Get a lease, or None if it does not exist."""
        try:
            return await self._request_json(
                "GET", f"{LEASES_PATH.format(namespace=namespace)}/{name}"
            )
        except APIError as e:
            if e.status_code == 404:
                return None
            raise

    async def create_lease(self, namespace: str, lease: Dict[str, Any]) -> Dict[str, Any]:
        """Create a lease. Raises APIError with status 409 if it already exists."""
        return await self._request_json(
            "POST", LEASES_PATH.format(namespace=namespace), json=lease
        )

    async def replace_lease(self, namespace: str, name: str, lease: Dict[str, Any]) -> Dict[str, Any]:
        """Replace a lease.

        The lease's ``metadata.resourceVersion`` makes this a compare-and-swap;
        a stale version fails with status 409.
        """
        return await self._request_json(
            "PUT", f"{LEASES_PATH.format(namespace=namespace)}/{name}", json=lease
        )
