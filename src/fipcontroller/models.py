"""Domain objects shared by the reconciliation pipeline.

All of these are snapshots: they are rebuilt from live API responses on every
reconciliation pass and never written back.
"""

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class AddressType(str, Enum):
    """Kind of node address used to match cluster members to servers."""

    INTERNAL = "internal"
    EXTERNAL = "external"

    @property
    def node_address_type(self) -> str:
        """Kubernetes NodeAddress type for this kind."""
        return "InternalIP" if self is AddressType.INTERNAL else "ExternalIP"


@dataclass(frozen=True)
class NodeAddress:
    """A single typed address reported by a cluster node."""

    address: str
    type: str


@dataclass
class ClusterMember:
    """A Kubernetes node as seen by the controller."""

    name: str
    ready: bool
    addresses: List[NodeAddress] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> "ClusterMember":
        """Create from a Kubernetes Node object."""
        metadata = data.get("metadata", {})
        status = data.get("status", {})

        ready = any(
            condition.get("type") == "Ready" and condition.get("status") == "True"
            for condition in status.get("conditions", [])
        )
        addresses = [
            NodeAddress(address=a.get("address", ""), type=a.get("type", ""))
            for a in status.get("addresses", [])
        ]

        return cls(name=metadata.get("name", ""), ready=ready, addresses=addresses)

    def address_of(self, address_type: AddressType) -> Optional[str]:
        """First address of the given kind, if the node reports one."""
        for node_address in self.addresses:
            if node_address.type == address_type.node_address_type and node_address.address:
                return node_address.address
        return None


@dataclass
class Server:
    """A Hetzner Cloud server."""

    id: int
    name: str
    status: str = "running"
    public_ipv4: Optional[str] = None
    public_ipv6_network: Optional[str] = None
    private_ips: List[str] = field(default_factory=list)
    floating_ip_ids: List[int] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> "Server":
        """Create from a Hetzner Cloud API server object."""
        public_net = data.get("public_net") or {}
        ipv4 = public_net.get("ipv4") or {}
        ipv6 = public_net.get("ipv6") or {}

        private_ips = []
        for private_net in data.get("private_net") or []:
            if private_net.get("ip"):
                private_ips.append(private_net["ip"])
            private_ips.extend(private_net.get("alias_ips") or [])

        return cls(
            id=data["id"],
            name=data.get("name", ""),
            status=data.get("status", "unknown"),
            public_ipv4=ipv4.get("ip"),
            public_ipv6_network=ipv6.get("ip"),
            private_ips=private_ips,
            floating_ip_ids=list(public_net.get("floating_ips") or []),
        )

    @property
    def addresses(self) -> List[str]:
        """Plain addresses of this server (public IPv4 first)."""
        result = [self.public_ipv4] if self.public_ipv4 else []
        result.extend(self.private_ips)
        return result

    def has_address(self, address: str) -> bool:
        """Check whether a node address belongs to this server.

        IPv4 and private addresses compare as strings. Hetzner hands out a
        whole IPv6 network per server, so IPv6 addresses match by containment.
        """
        if address in self.addresses:
            return True
        if self.public_ipv6_network and ":" in address:
            try:
                network = ipaddress.ip_network(self.public_ipv6_network, strict=False)
                return ipaddress.ip_address(address) in network
            except ValueError:
                return False
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "addresses": self.addresses,
            "public_ipv6_network": self.public_ipv6_network,
            "floating_ip_ids": self.floating_ip_ids,
        }


@dataclass
class FloatingIP:
    """A Hetzner Cloud floating IP."""

    id: int
    ip: str
    type: str = "ipv4"
    name: str = ""
    server_id: Optional[int] = None

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> "FloatingIP":
        """Create from a Hetzner Cloud API floating IP object."""
        server = data.get("server")
        # The API returns a bare id; older fixtures embed the server object.
        if isinstance(server, dict):
            server = server.get("id")

        return cls(
            id=data["id"],
            ip=data.get("ip", ""),
            type=data.get("type", "ipv4"),
            name=data.get("name") or "",
            server_id=server,
        )

    @property
    def assigned(self) -> bool:
        return self.server_id is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "ip": self.ip,
            "type": self.type,
            "name": self.name,
            "server_id": self.server_id,
        }


@dataclass(frozen=True)
class Assignment:
    """Balancing decision: move ``floating_ip`` onto ``server``."""

    floating_ip: FloatingIP
    server: Server
    previous_server_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "floating_ip": self.floating_ip.ip,
            "server": self.server.name,
            "server_id": self.server.id,
            "previous_server_id": self.previous_server_id,
        }


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""

    running_servers: List[Server] = field(default_factory=list)
    floating_ips: List[FloatingIP] = field(default_factory=list)
    planned: List[Assignment] = field(default_factory=list)
    applied: List[Assignment] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    interrupted: bool = False
    dry_run: bool = False
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """True when the pass ran to the end of its plan.

        Per floating IP failures do not count against this; see ``partial``.
        """
        return not self.interrupted

    @property
    def partial(self) -> bool:
        """True when some floating IPs could not be assigned."""
        return bool(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "running_servers": [s.name for s in self.running_servers],
            "floating_ips": len(self.floating_ips),
            "planned": [a.to_dict() for a in self.planned],
            "applied": len(self.applied),
            "failures": dict(self.failures),
            "partial": self.partial,
            "interrupted": self.interrupted,
            "dry_run": self.dry_run,
            "duration_seconds": round(self.duration_seconds, 3),
        }
