"""Interfaces the reconciliation pipeline expects from its API clients."""

from typing import List, Protocol

from fipcontroller.models import ClusterMember, FloatingIP, Server
from fipcontroller.providers.hcloud_client import AssignResponse


class CloudProvider(Protocol):
    """Cloud side: servers and floating IPs."""

    async def list_servers(self) -> List[Server]:
        ...

    async def list_floating_ips(self) -> List[FloatingIP]:
        ...

    async def assign_floating_ip(self, floating_ip_id: int, server_id: int) -> AssignResponse:
        ...


class ClusterProvider(Protocol):
    """Cluster side: node membership."""

    async def list_nodes(self) -> List[ClusterMember]:
        ...
