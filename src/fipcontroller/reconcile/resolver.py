"""Resolve ready cluster members to the addresses used for server matching."""

from typing import List

from fipcontroller.errors import APIError, ResolutionError
from fipcontroller.logging import get_logger
from fipcontroller.models import AddressType
from fipcontroller.providers.base import ClusterProvider

logger = get_logger(__name__, component="resolver")


async def resolve_member_addresses(
    cluster: ClusterProvider,
    address_type: AddressType,
) -> List[str]:
    """Return one address of ``address_type`` per ready cluster member.

    Members that are not ready, or report no address of that kind, are
    skipped. Order follows the node listing; duplicates are dropped.

    Raises:
        ResolutionError: If the node listing fails or no address is left.
    """
    try:
        members = await cluster.list_nodes()
    except APIError as e:
        raise ResolutionError(
            f"could not list cluster nodes: {e}", details=e.details
        ) from e

    addresses: List[str] = []
    for member in members:
        if not member.ready:
            logger.debug("member_not_ready", member=member.name)
            continue

        address = member.address_of(address_type)
        if address is None:
            logger.debug(
                "member_without_address",
                member=member.name,
                address_type=address_type.value,
            )
            continue

        if address not in addresses:
            addresses.append(address)

    if not addresses:
        raise ResolutionError(
            "could not find any ready cluster member addresses",
            details={"members": len(members), "address_type": address_type.value},
        )

    return addresses
