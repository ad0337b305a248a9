"""Produce the set of floating IPs the controller manages."""

from typing import List, Optional, Sequence

from fipcontroller.errors import APIError, SourceError
from fipcontroller.logging import get_logger
from fipcontroller.models import FloatingIP
from fipcontroller.providers.base import CloudProvider

logger = get_logger(__name__, component="source")


async def fetch_floating_ips(
    cloud: CloudProvider,
    static: Optional[Sequence[str]] = None,
) -> List[FloatingIP]:
    """Return the floating IPs to manage.

    With ``static`` set, exactly those floating IPs are returned in the given
    order; each entry is looked up by address or name. Otherwise every
    floating IP of the project is returned. An empty project is a valid
    result, not an error.

    Raises:
        SourceError: If the listing fails or a static entry does not exist.
    """
    try:
        available = await cloud.list_floating_ips()
    except APIError as e:
        raise SourceError(f"could not list floating IPs: {e}", details=e.details) from e

    if not static:
        if not available:
            logger.info("no_floating_ips_found")
        return available

    selected: List[FloatingIP] = []
    for entry in static:
        match = next(
            (fip for fip in available if entry in (fip.ip, fip.name)),
            None,
        )
        if match is None:
            raise SourceError(
                f"configured floating IP '{entry}' does not exist",
                details={"floating_ip": entry},
            )
        if match not in selected:
            selected.append(match)

    return selected
