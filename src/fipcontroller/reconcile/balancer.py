"""Assignment balancer.

Greedy, single pass over the floating IPs using only the snapshot taken at
the start of the pass:

1. A floating IP needs a new home when it is unassigned or its server is not
   in the running set.
2. It goes to the running server with the fewest tracked floating IPs; ties
   go to the server listed first.
3. That server's tracked count is bumped right away, so the next floating IP
   in the same pass sees it. New assignments therefore spread round-robin
   instead of piling onto one server.

Floating IPs already on a running server are left alone and do not touch the
counters. Evening out existing assignments is not attempted; it happens over
later passes as membership changes.
"""

from typing import Dict, List, Sequence

from fipcontroller.models import Assignment, FloatingIP, Server


def needs_reassignment(floating_ip: FloatingIP, running_ids: set[int]) -> bool:
    return floating_ip.server_id is None or floating_ip.server_id not in running_ids


def initial_counts(servers: Sequence[Server]) -> Dict[int, int]:
    """Floating IP count per running server as reported by the provider."""
    return {server.id: len(server.floating_ip_ids) for server in servers}


def least_loaded(servers: Sequence[Server], counts: Dict[int, int]) -> Server:
    """First server with the lowest tracked count."""
    best = servers[0]
    for server in servers[1:]:
        if counts[server.id] < counts[best.id]:
            best = server
    return best


def plan_assignments(
    floating_ips: Sequence[FloatingIP],
    running_servers: Sequence[Server],
) -> List[Assignment]:
    """Decide which floating IPs move and where.

    Args:
        floating_ips: Managed floating IPs, in source order.
        running_servers: Assignment targets, in matcher order.

    Returns:
        One Assignment per floating IP that must move, in source order.

    Raises:
        ValueError: If a floating IP needs a target but there are no servers.
    """
    running_ids = {server.id for server in running_servers}
    counts = initial_counts(running_servers)
    plan: List[Assignment] = []

    for floating_ip in floating_ips:
        if not needs_reassignment(floating_ip, running_ids):
            continue
        if not running_servers:
            raise ValueError("no running servers to assign floating IPs to")

        target = least_loaded(running_servers, counts)
        plan.append(
            Assignment(
                floating_ip=floating_ip,
                server=target,
                previous_server_id=floating_ip.server_id,
            )
        )
        counts[target.id] += 1

    return plan
