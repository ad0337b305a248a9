"""Find the cloud servers backing live cluster members."""

from typing import List, Sequence

from fipcontroller.errors import APIError, MatchError
from fipcontroller.logging import get_logger
from fipcontroller.models import Server
from fipcontroller.providers.base import CloudProvider

logger = get_logger(__name__, component="matcher")


def filter_running_servers(servers: Sequence[Server], addresses: Sequence[str]) -> List[Server]:
    """Keep servers owning at least one of ``addresses``, in listing order."""
    return [
        server
        for server in servers
        if any(server.has_address(address) for address in addresses)
    ]


async def match_running_servers(
    cloud: CloudProvider,
    addresses: Sequence[str],
) -> List[Server]:
    """List cloud servers and return the ones matching member addresses.

    A server counts as running purely because some ready member currently
    reports one of its addresses; its name is never compared.

    Raises:
        MatchError: If the server listing fails or nothing matches.
    """
    try:
        servers = await cloud.list_servers()
    except APIError as e:
        raise MatchError(f"could not list servers: {e}", details=e.details) from e

    running = filter_running_servers(servers, addresses)
    if not running:
        raise MatchError(
            "no server objects were found for the member addresses",
            details={"addresses": list(addresses), "servers": len(servers)},
        )

    logger.debug("running_servers_matched", servers=[s.name for s in running])
    return running
