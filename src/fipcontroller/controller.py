"""Reconciliation pass and the control loop that repeats it.

A pass runs resolve -> match -> source -> balance -> execute strictly in
order. The control loop repeats passes on a fixed interval and never lets an
error out; only the stop event ends it.
"""

import asyncio
import ssl
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from fipcontroller.cluster.leader_election import (
    LeaderElectionConfig,
    LeaderElector,
    wait_for_event,
)
from fipcontroller.cluster.lease import KubernetesLeaseLock, LeaseLock, MemoryLeaseLock
from fipcontroller.config import Config
from fipcontroller.errors import (
    ClientInitializationError,
    FIPControllerError,
    ReconciliationError,
)
from fipcontroller.logging import get_logger
from fipcontroller.metrics import MetricsCollector, get_metrics_collector
from fipcontroller.models import ReconcileReport
from fipcontroller.providers import HetznerCloudClient, K8sConfig, KubernetesClient
from fipcontroller.providers.base import CloudProvider, ClusterProvider
from fipcontroller.reconcile import (
    AssignmentExecutor,
    fetch_floating_ips,
    match_running_servers,
    plan_assignments,
    resolve_member_addresses,
)
from fipcontroller.retries import Backoff

logger = get_logger(__name__, component="controller")


@dataclass
class ControllerContext:
    """Everything a pass needs, built once at startup and passed down."""

    config: Config
    cloud: CloudProvider
    cluster: ClusterProvider
    backoff: Backoff
    metrics: MetricsCollector = field(default_factory=get_metrics_collector)
    lease: Optional[LeaseLock] = None

    @classmethod
    def from_config(cls, config: Config, leader_election: bool = True) -> "ControllerContext":
        """Construct API clients for ``config``.

        Raises:
            ClientInitializationError: If a client cannot be constructed.
        """
        try:
            cloud = HetznerCloudClient(config.hcloud_api_token, endpoint=config.hcloud_endpoint)
        except ValueError as e:
            raise ClientInitializationError(
                f"could not initialise hetzner client: {e}", client="hcloud"
            ) from e

        try:
            cluster = KubernetesClient(_kubernetes_config(config))
        except (OSError, ssl.SSLError) as e:
            raise ClientInitializationError(
                f"could not initialise kubernetes client: {e}", client="kubernetes"
            ) from e

        if leader_election:
            lease: LeaseLock = KubernetesLeaseLock(cluster, config.lease_name, config.namespace)
        else:
            lease = MemoryLeaseLock(config.lease_name)

        return cls(
            config=config,
            cloud=cloud,
            cluster=cluster,
            backoff=config.backoff,
            lease=lease,
        )

    async def close(self) -> None:
        """Close clients that hold connections."""
        for client in (self.cloud, self.cluster):
            close = getattr(client, "close", None)
            if close is not None:
                await close()


def _kubernetes_config(config: Config) -> K8sConfig:
    if config.kubernetes_api_server is None:
        return K8sConfig.in_cluster()

    token = None
    if config.kubernetes_token_file is not None:
        try:
            token = config.kubernetes_token_file.read_text().strip()
        except OSError as e:
            raise ClientInitializationError(
                f"could not read kubernetes token file: {e}", client="kubernetes"
            ) from e

    return K8sConfig(
        api_server=config.kubernetes_api_server,
        token=token,
        certificate_authority=(
            str(config.kubernetes_ca_file) if config.kubernetes_ca_file is not None else None
        ),
    )


class Reconciler:
    """Runs single reconciliation passes."""

    def __init__(self, context: ControllerContext, executor: Optional[AssignmentExecutor] = None):
        self.context = context
        self.executor = executor or AssignmentExecutor(context.cloud, context.backoff)

    async def reconcile(
        self,
        stop: Optional[asyncio.Event] = None,
        dry_run: bool = False,
    ) -> ReconcileReport:
        """Run one pass.

        Per floating IP mutation failures are recorded in the report and do
        not fail the pass.

        Args:
            stop: Checked before each assignment; the pass ends early once set.
            dry_run: Plan only, issue no assignment calls.

        Raises:
            ResolutionError, MatchError, SourceError: The pass could not build
                its snapshot.
        """
        config = self.context.config
        metrics = self.context.metrics
        started = time.perf_counter()
        report = ReconcileReport(dry_run=dry_run)

        logger.debug("checking_floating_ips")

        addresses = await resolve_member_addresses(self.context.cluster, config.node_address_type)
        report.running_servers = await match_running_servers(self.context.cloud, addresses)
        report.floating_ips = await fetch_floating_ips(
            self.context.cloud, config.floating_ips or None
        )
        metrics.record_snapshot(len(report.running_servers), len(report.floating_ips))

        report.planned = plan_assignments(report.floating_ips, report.running_servers)

        for index, assignment in enumerate(report.planned):
            floating_ip = assignment.floating_ip
            if dry_run:
                logger.info(
                    "floating_ip_reassignment_planned",
                    floating_ip=floating_ip.ip,
                    server=assignment.server.name,
                )
                continue
            if stop is not None and stop.is_set():
                report.interrupted = True
                logger.info("reconciliation_interrupted", remaining=len(report.planned) - index)
                break

            logger.info(
                "switching_floating_ip",
                floating_ip=floating_ip.ip,
                server=assignment.server.name,
                previous_server_id=assignment.previous_server_id,
            )
            try:
                await self.executor.execute(assignment)
            except ReconciliationError as e:
                report.failures[floating_ip.ip] = e.message
                metrics.record_assignment("failed")
                logger.error("floating_ip_assignment_failed", **e.to_dict())
                continue

            report.applied.append(assignment)
            metrics.record_assignment("success")

        report.duration_seconds = time.perf_counter() - started
        return report


class LoopState(str, Enum):
    """Control loop states."""

    IDLE = "idle"
    RECONCILING = "reconciling"
    STOPPED = "stopped"


class ControlLoop:
    """Repeats reconciliation passes until stopped."""

    def __init__(
        self,
        reconciler: Reconciler,
        interval: float = 30.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.reconciler = reconciler
        self.interval = interval
        self.metrics = metrics or reconciler.context.metrics
        self.state = LoopState.IDLE
        self.passes = 0

    async def run_pass(self, stop: Optional[asyncio.Event] = None) -> Optional[ReconcileReport]:
        """Run one pass; log and absorb any error.

        Returns:
            The report, or None if the pass failed.
        """
        self.state = LoopState.RECONCILING
        self.passes += 1
        try:
            with self.metrics.track_reconcile():
                report = await self.reconciler.reconcile(stop=stop)
        except FIPControllerError as e:
            self.metrics.record_pass("error", error_type=type(e).__name__)
            logger.error("reconciliation_failed", **e.to_dict())
            return None
        except Exception as e:
            # Anything else is a bug, but it still must not end the loop.
            self.metrics.record_pass("error", error_type=type(e).__name__)
            logger.exception("reconciliation_crashed", error=str(e))
            return None
        finally:
            if self.state is LoopState.RECONCILING:
                self.state = LoopState.IDLE

        # per IP failures are counted in assignments_total
        self.metrics.record_pass("success" if report.success else "interrupted")
        logger.info("reconciliation_complete", **report.to_dict())
        return report

    async def run(self, stop: asyncio.Event) -> None:
        """Run passes every ``interval`` seconds until ``stop`` is set.

        Passes start on a fixed cadence. A pass that overruns the interval
        is followed immediately by the next one.
        """
        started = time.monotonic()
        if await self.run_pass(stop) is not None:
            logger.info("initialization_complete", interval=self.interval)

        while True:
            wait = max(0.0, self.interval - (time.monotonic() - started))
            if await wait_for_event(stop, wait):
                break
            started = time.monotonic()
            await self.run_pass(stop)

        self.state = LoopState.STOPPED
        logger.info("control_loop_stopped", passes=self.passes)


def build_elector(context: ControllerContext, loop: ControlLoop) -> LeaderElector:
    """Gate ``loop`` behind the context's lease."""
    config = context.config
    lease = context.lease or MemoryLeaseLock(config.lease_name)
    return LeaderElector(
        lock=lease,
        config=LeaderElectionConfig(
            identity=config.pod_name,
            lease_duration=config.lease_duration,
            renew_deadline=config.lease_renew_deadline,
            retry_period=config.lease_retry_period,
        ),
        on_started_leading=loop.run,
        metrics=context.metrics,
    )


async def run_controller(context: ControllerContext, shutdown: asyncio.Event) -> None:
    """Run the leader-gated control loop until ``shutdown`` is set."""
    loop = ControlLoop(Reconciler(context), interval=context.config.reconcile_interval)
    elector = build_elector(context, loop)
    await elector.run(shutdown)
