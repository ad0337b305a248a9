"""Pytest configuration and fixtures for fip-controller tests.

Provides in-memory fakes for the cloud and cluster APIs plus factories for
configuration and controller contexts, so pipeline tests never touch the
network.
"""

from typing import Callable, Dict, List, Optional, Tuple

import pytest
from prometheus_client import CollectorRegistry

from fipcontroller.config import Config
from fipcontroller.controller import ControllerContext
from fipcontroller.errors import APIError
from fipcontroller.metrics import MetricsCollector
from fipcontroller.models import ClusterMember, FloatingIP, NodeAddress, Server
from fipcontroller.providers import AssignResponse
from fipcontroller.retries import Backoff


class FakeCloud:
    """In-memory stand-in for the Hetzner Cloud client.

    Assignments are applied to the stored floating IPs, so a second pass over
    the same fake sees the result of the first.
    """

    def __init__(
        self,
        servers: Optional[List[Server]] = None,
        floating_ips: Optional[List[FloatingIP]] = None,
    ):
        self.servers = list(servers or [])
        self.floating_ips = list(floating_ips or [])
        self.assign_calls: List[Tuple[int, int]] = []
        # floating IP id -> error raised on every assign call for it
        self.failing: Dict[int, Exception] = {}
        self.status_code = 201
        self.list_servers_error: Optional[Exception] = None
        self.list_floating_ips_error: Optional[Exception] = None

    async def list_servers(self) -> List[Server]:
        if self.list_servers_error is not None:
            raise self.list_servers_error
        return list(self.servers)

    async def list_floating_ips(self) -> List[FloatingIP]:
        if self.list_floating_ips_error is not None:
            raise self.list_floating_ips_error
        return [FloatingIP(**fip.to_dict()) for fip in self.floating_ips]

    async def assign_floating_ip(self, floating_ip_id: int, server_id: int) -> AssignResponse:
        self.assign_calls.append((floating_ip_id, server_id))
        if floating_ip_id in self.failing:
            raise self.failing[floating_ip_id]

        if self.status_code == 201:
            for fip in self.floating_ips:
                if fip.id == floating_ip_id:
                    fip.server_id = server_id
            for server in self.servers:
                if floating_ip_id in server.floating_ip_ids:
                    server.floating_ip_ids.remove(floating_ip_id)
                if server.id == server_id:
                    server.floating_ip_ids.append(floating_ip_id)
        return AssignResponse(status_code=self.status_code, action_id=len(self.assign_calls))


class FakeCluster:
    """In-memory stand-in for the Kubernetes client."""

    def __init__(self, members: Optional[List[ClusterMember]] = None):
        self.members = list(members or [])
        self.error: Optional[Exception] = None
        self.calls = 0

    async def list_nodes(self) -> List[ClusterMember]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.members)


def make_member(name: str, address: str, ready: bool = True, kind: str = "ExternalIP") -> ClusterMember:
    return ClusterMember(name=name, ready=ready, addresses=[NodeAddress(address=address, type=kind)])


def unavailable(message: str = "service unavailable") -> APIError:
    return APIError(message, status_code=503, error_code="unavailable")


# Fixtures


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector bound to a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def make_config() -> Callable[..., Config]:
    """Factory for valid configurations with overrides."""

    def _make(**overrides) -> Config:
        values = {"hcloud_api_token": "test-token", "pod_name": "test-pod"}
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def fast_backoff() -> Backoff:
    """Three attempts, no waiting."""
    return Backoff(duration=0, factor=1.0, steps=3)


@pytest.fixture
def fake_cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def context(make_config, fake_cloud, fake_cluster, fast_backoff, metrics) -> ControllerContext:
    """Controller context wired to the fakes."""
    return ControllerContext(
        config=make_config(),
        cloud=fake_cloud,
        cluster=fake_cluster,
        backoff=fast_backoff,
        metrics=metrics,
    )


@pytest.fixture
def single_node(fake_cloud, fake_cluster) -> Server:
    """One ready node backed by one running server."""
    server = Server(id=1, name="node-1", public_ipv4="10.0.0.1")
    fake_cloud.servers = [server]
    fake_cluster.members = [make_member("node-1", "10.0.0.1")]
    return server


# Pytest configuration hooks


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: unit tests that don't require external services")
    config.addinivalue_line("markers", "integration: end to end tests against mock transports")
    config.addinivalue_line("markers", "slow: tests that take a long time to run")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on path."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
