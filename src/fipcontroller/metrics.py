"""Prometheus metrics for the floating IP controller.

Exports reconciliation and leadership metrics via HTTP for Prometheus
scraping.
"""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from fipcontroller.logging import get_logger

logger = get_logger(__name__, component="metrics")


class MetricsCollector:
    """Holds every controller metric.

    One instance per registry; the process-wide instance is returned by
    :func:`get_metrics_collector`. Tests pass their own ``CollectorRegistry``.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.registry = registry

        self.reconcile_passes_total = Counter(
            "fipcontroller_reconcile_passes_total",
            "Reconciliation passes by outcome",
            ["outcome"],
            registry=registry,
        )
        self.reconcile_errors_total = Counter(
            "fipcontroller_reconcile_errors_total",
            "Failed reconciliation passes by error type",
            ["error_type"],
            registry=registry,
        )
        self.assignments_total = Counter(
            "fipcontroller_assignments_total",
            "Floating IP assignment calls by outcome",
            ["outcome"],
            registry=registry,
        )
        self.reconcile_duration_seconds = Histogram(
            "fipcontroller_reconcile_duration_seconds",
            "Duration of reconciliation passes",
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=registry,
        )
        self.running_servers = Gauge(
            "fipcontroller_running_servers",
            "Servers matched to ready cluster members in the last pass",
            registry=registry,
        )
        self.managed_floating_ips = Gauge(
            "fipcontroller_managed_floating_ips",
            "Floating IPs considered in the last pass",
            registry=registry,
        )
        self.is_leader = Gauge(
            "fipcontroller_is_leader",
            "1 while this replica holds the lease",
            registry=registry,
        )
        self.leadership_transitions_total = Counter(
            "fipcontroller_leadership_transitions_total",
            "Leadership state changes",
            ["state"],
            registry=registry,
        )

    @contextmanager
    def track_reconcile(self) -> Iterator[None]:
        """Time a reconciliation pass."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.reconcile_duration_seconds.observe(time.perf_counter() - start)

    def record_pass(self, outcome: str, error_type: Optional[str] = None) -> None:
        self.reconcile_passes_total.labels(outcome=outcome).inc()
        if error_type:
            self.reconcile_errors_total.labels(error_type=error_type).inc()

    def record_assignment(self, outcome: str) -> None:
        self.assignments_total.labels(outcome=outcome).inc()

    def record_snapshot(self, running_servers: int, floating_ips: int) -> None:
        self.running_servers.set(running_servers)
        self.managed_floating_ips.set(floating_ips)

    def set_leader(self, leading: bool) -> None:
        self.is_leader.set(1 if leading else 0)
        self.leadership_transitions_total.labels(
            state="leader" if leading else "follower"
        ).inc()


_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the process-wide metrics collector."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> None:
    """Expose the default registry over HTTP.

    Args:
        port: Port to listen on.
        addr: Address to bind.
    """
    start_http_server(port, addr=addr)
    logger.info("metrics_server_started", port=port, addr=addr)
