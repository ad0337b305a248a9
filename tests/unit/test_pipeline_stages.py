"""Tests for the resolve, match and source stages."""

import pytest

from conftest import FakeCloud, FakeCluster, make_member, unavailable
from fipcontroller.errors import MatchError, ResolutionError, SourceError
from fipcontroller.models import AddressType, ClusterMember, FloatingIP, NodeAddress, Server
from fipcontroller.reconcile import (
    fetch_floating_ips,
    filter_running_servers,
    match_running_servers,
    resolve_member_addresses,
)


class TestResolveMemberAddresses:
    """Tests for resolve_member_addresses."""

    @pytest.mark.asyncio
    async def test_ready_members_only(self):
        cluster = FakeCluster(
            [
                make_member("a", "10.0.0.1"),
                make_member("b", "10.0.0.2", ready=False),
                make_member("c", "10.0.0.3"),
            ]
        )

        addresses = await resolve_member_addresses(cluster, AddressType.EXTERNAL)

        assert addresses == ["10.0.0.1", "10.0.0.3"]

    @pytest.mark.asyncio
    async def test_picks_configured_kind(self):
        member = ClusterMember(
            name="a",
            ready=True,
            addresses=[
                NodeAddress(address="a", type="Hostname"),
                NodeAddress(address="192.168.0.5", type="InternalIP"),
                NodeAddress(address="203.0.113.5", type="ExternalIP"),
            ],
        )
        cluster = FakeCluster([member])

        assert await resolve_member_addresses(cluster, AddressType.INTERNAL) == ["192.168.0.5"]
        assert await resolve_member_addresses(cluster, AddressType.EXTERNAL) == ["203.0.113.5"]

    @pytest.mark.asyncio
    async def test_members_without_address_skipped(self):
        cluster = FakeCluster(
            [
                make_member("a", "192.168.0.1", kind="InternalIP"),
                make_member("b", "203.0.113.2"),
            ]
        )

        assert await resolve_member_addresses(cluster, AddressType.EXTERNAL) == ["203.0.113.2"]

    @pytest.mark.asyncio
    async def test_duplicates_dropped(self):
        cluster = FakeCluster([make_member("a", "10.0.0.1"), make_member("b", "10.0.0.1")])

        assert await resolve_member_addresses(cluster, AddressType.EXTERNAL) == ["10.0.0.1"]

    @pytest.mark.asyncio
    async def test_no_ready_members(self):
        cluster = FakeCluster([make_member("a", "10.0.0.1", ready=False)])

        with pytest.raises(ResolutionError):
            await resolve_member_addresses(cluster, AddressType.EXTERNAL)

    @pytest.mark.asyncio
    async def test_listing_failure(self):
        cluster = FakeCluster()
        cluster.error = unavailable()

        with pytest.raises(ResolutionError) as exc_info:
            await resolve_member_addresses(cluster, AddressType.EXTERNAL)

        assert exc_info.value.details["status_code"] == 503


class TestMatchRunningServers:
    """Tests for server matching."""

    def test_filter_keeps_listing_order(self):
        servers = [
            Server(id=1, name="s1", public_ipv4="10.0.0.1"),
            Server(id=2, name="s2", public_ipv4="10.0.0.2"),
            Server(id=3, name="s3", public_ipv4="10.0.0.3"),
        ]

        running = filter_running_servers(servers, ["10.0.0.3", "10.0.0.1"])

        assert [s.id for s in running] == [1, 3]

    def test_matches_private_network_ip(self):
        server = Server(id=1, name="s1", public_ipv4="203.0.113.1", private_ips=["10.1.0.2"])

        assert filter_running_servers([server], ["10.1.0.2"]) == [server]

    def test_matches_ipv6_network(self):
        server = Server(id=1, name="s1", public_ipv6_network="2001:db8:1::/64")

        assert filter_running_servers([server], ["2001:db8:1::1"]) == [server]
        assert filter_running_servers([server], ["2001:db8:2::1"]) == []

    def test_name_is_never_compared(self):
        server = Server(id=1, name="10.0.0.1", public_ipv4="10.0.0.9")

        assert filter_running_servers([server], ["10.0.0.1"]) == []

    @pytest.mark.asyncio
    async def test_no_match(self):
        cloud = FakeCloud(servers=[Server(id=1, name="s1", public_ipv4="10.0.0.1")])

        with pytest.raises(MatchError):
            await match_running_servers(cloud, ["10.0.0.2"])

    @pytest.mark.asyncio
    async def test_listing_failure(self):
        cloud = FakeCloud()
        cloud.list_servers_error = unavailable()

        with pytest.raises(MatchError):
            await match_running_servers(cloud, ["10.0.0.1"])


class TestFetchFloatingIPs:
    """Tests for the floating IP source."""

    @pytest.fixture
    def cloud(self):
        return FakeCloud(
            floating_ips=[
                FloatingIP(id=1, ip="192.0.2.1", name="ingress"),
                FloatingIP(id=2, ip="192.0.2.2", name="mail"),
                FloatingIP(id=3, ip="2001:db8::", type="ipv6", name="v6"),
            ]
        )

    @pytest.mark.asyncio
    async def test_dynamic_returns_all(self, cloud):
        fips = await fetch_floating_ips(cloud)

        assert [f.id for f in fips] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_static_in_configured_order(self, cloud):
        fips = await fetch_floating_ips(cloud, ["mail", "192.0.2.1"])

        assert [f.id for f in fips] == [2, 1]

    @pytest.mark.asyncio
    async def test_static_unknown_entry(self, cloud):
        with pytest.raises(SourceError) as exc_info:
            await fetch_floating_ips(cloud, ["192.0.2.99"])

        assert exc_info.value.details["floating_ip"] == "192.0.2.99"

    @pytest.mark.asyncio
    async def test_empty_listing_is_not_an_error(self):
        assert await fetch_floating_ips(FakeCloud()) == []

    @pytest.mark.asyncio
    async def test_listing_failure(self, cloud):
        cloud.list_floating_ips_error = unavailable()

        with pytest.raises(SourceError):
            await fetch_floating_ips(cloud)
