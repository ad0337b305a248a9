"""End to end reconciliation against mocked Hetzner Cloud and Kubernetes APIs."""

import asyncio
import json
import re

import httpx
import pytest

from fipcontroller.cluster import MemoryLeaseLock
from fipcontroller.controller import ControllerContext, Reconciler, run_controller
from fipcontroller.errors import ResolutionError
from fipcontroller.providers import HetznerCloudClient, K8sConfig, KubernetesClient
from fipcontroller.retries import Backoff

ASSIGN_PATH = re.compile(r"/v1/floating_ips/(\d+)/actions/assign")


class HetznerAPI:
    """Fake Hetzner Cloud API that applies assign actions to its state."""

    def __init__(self, servers, floating_ips):
        self.servers = servers
        self.floating_ips = floating_ips
        self.assigned = []
        self.unavailable = set()

    def _page(self, key, items):
        return httpx.Response(
            200, json={key: items, "meta": {"pagination": {"page": 1, "next_page": None}}}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path == "/v1/servers":
            return self._page("servers", self.servers)
        if request.method == "GET" and path == "/v1/floating_ips":
            return self._page("floating_ips", self.floating_ips)

        match = ASSIGN_PATH.fullmatch(path)
        if request.method == "POST" and match:
            fip_id = int(match.group(1))
            if fip_id in self.unavailable:
                return httpx.Response(
                    503, json={"error": {"code": "unavailable", "message": "try again later"}}
                )
            server_id = json.loads(request.content)["server"]
            for fip in self.floating_ips:
                if fip["id"] == fip_id:
                    fip["server"] = server_id
            self.assigned.append((fip_id, server_id))
            return httpx.Response(201, json={"action": {"id": len(self.assigned), "status": "running"}})

        return httpx.Response(404, json={"error": {"code": "not_found", "message": path}})


class KubernetesAPI:
    """Fake Kubernetes API serving a node list."""

    def __init__(self, nodes):
        self.nodes = nodes
        self.behind_proxy = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.behind_proxy:
            return httpx.Response(200, text="<html>proxy</html>")
        if request.url.path == "/api/v1/nodes":
            return httpx.Response(200, json={"items": self.nodes, "metadata": {}})
        return httpx.Response(404, json={"reason": "NotFound"})


def server(id, name, ipv4):
    return {
        "id": id,
        "name": name,
        "status": "running",
        "public_net": {"ipv4": {"ip": ipv4}, "ipv6": None, "floating_ips": []},
        "private_net": [],
    }


def node(name, address, ready=True):
    return {
        "metadata": {"name": name},
        "status": {
            "conditions": [{"type": "Ready", "status": "True" if ready else "False"}],
            "addresses": [{"type": "ExternalIP", "address": address}],
        },
    }


def floating_ip(id, ip, server_id=None):
    return {"id": id, "ip": ip, "type": "ipv4", "name": f"fip-{id}", "server": server_id}


@pytest.fixture
def hetzner():
    return HetznerAPI(
        servers=[server(1, "node-1", "203.0.113.1")],
        floating_ips=[
            floating_ip(1, "192.0.2.1"),
            floating_ip(2, "192.0.2.2"),
            floating_ip(3, "192.0.2.3"),
        ],
    )


@pytest.fixture
def kubernetes():
    return KubernetesAPI([node("node-1", "203.0.113.1")])


@pytest.fixture
def api_context(make_config, metrics, hetzner, kubernetes):
    cloud = HetznerCloudClient(
        "test-token",
        endpoint="https://api.hetzner.test/v1",
        transport=httpx.MockTransport(hetzner),
    )
    cluster = KubernetesClient(
        K8sConfig(api_server="https://k8s.test"),
        transport=httpx.MockTransport(kubernetes),
    )
    return ControllerContext(
        config=make_config(
            reconcile_interval=0.05,
            lease_duration=0.5,
            lease_renew_deadline=0.3,
            lease_retry_period=0.05,
        ),
        cloud=cloud,
        cluster=cluster,
        backoff=Backoff(duration=0, factor=1.0, steps=3),
        metrics=metrics,
        lease=MemoryLeaseLock(),
    )


class TestReconcileAgainstAPIs:
    """Full passes through the real HTTP clients."""

    @pytest.mark.asyncio
    async def test_assigns_all_floating_ips(self, api_context, hetzner):
        report = await Reconciler(api_context).reconcile()
        await api_context.close()

        assert hetzner.assigned == [(1, 1), (2, 1), (3, 1)]
        assert report.success

    @pytest.mark.asyncio
    async def test_unavailable_assign_only_affects_that_ip(self, api_context, hetzner):
        hetzner.unavailable.add(2)

        report = await Reconciler(api_context).reconcile()
        await api_context.close()

        assert hetzner.assigned == [(1, 1), (3, 1)]
        assert [f["server"] for f in hetzner.floating_ips] == [1, None, 1]
        assert "192.0.2.2" in report.failures
        assert report.success
        assert report.partial

    @pytest.mark.asyncio
    async def test_no_ready_nodes(self, api_context, hetzner, kubernetes):
        kubernetes.nodes = [node("node-1", "203.0.113.1", ready=False)]

        with pytest.raises(ResolutionError):
            await Reconciler(api_context).reconcile()
        await api_context.close()

        assert hetzner.assigned == []

    @pytest.mark.asyncio
    async def test_node_listing_behind_html_proxy(self, api_context, hetzner, kubernetes):
        kubernetes.behind_proxy = True

        with pytest.raises(ResolutionError, match="invalid JSON"):
            await Reconciler(api_context).reconcile()
        await api_context.close()

        assert hetzner.assigned == []

    @pytest.mark.asyncio
    async def test_leader_gated_controller(self, api_context, hetzner):
        shutdown = asyncio.Event()

        task = asyncio.create_task(run_controller(api_context, shutdown))
        for _ in range(100):
            if len(hetzner.assigned) == 3:
                break
            await asyncio.sleep(0.02)
        # later passes find nothing left to do
        await asyncio.sleep(0.2)
        shutdown.set()
        await asyncio.wait_for(task, timeout=2)
        await api_context.close()

        assert hetzner.assigned == [(1, 1), (2, 1), (3, 1)]
        assert (await api_context.lease.get()).holder == ""
