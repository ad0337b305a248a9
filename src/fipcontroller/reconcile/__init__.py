"""Reconciliation pipeline stages: resolve, match, source, balance, execute."""

from fipcontroller.reconcile.balancer import plan_assignments
from fipcontroller.reconcile.executor import ASSIGN_SUCCESS_STATUS, AssignmentExecutor
from fipcontroller.reconcile.matcher import filter_running_servers, match_running_servers
from fipcontroller.reconcile.resolver import resolve_member_addresses
from fipcontroller.reconcile.source import fetch_floating_ips

__all__ = [
    "resolve_member_addresses",
    "match_running_servers",
    "filter_running_servers",
    "fetch_floating_ips",
    "plan_assignments",
    "AssignmentExecutor",
    "ASSIGN_SUCCESS_STATUS",
]
