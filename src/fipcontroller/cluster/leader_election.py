"""Lease based leader election.

Only the replica holding the lease runs the control loop. Followers poll the
lease every ``retry_period``; the leader renews it on the same period and
steps down once a renewal has not succeeded within ``renew_deadline``.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from fipcontroller.cluster.lease import LeaseLock
from fipcontroller.errors import LeaseError
from fipcontroller.logging import bind_context, get_logger, unbind_context
from fipcontroller.metrics import MetricsCollector

logger = get_logger(__name__, component="leader_election")


class LeadershipState(str, Enum):
    """State of leadership."""

    FOLLOWER = "follower"
    LEADER = "leader"
    STOPPED = "stopped"


class LeaseEvent(str, Enum):
    """Lease events driving state transitions."""

    ACQUIRED = "acquired"
    RENEWED = "renewed"
    RENEW_FAILED = "renew_failed"
    RELEASED = "released"
    SHUTDOWN = "shutdown"


TRANSITIONS: Dict[Tuple[LeadershipState, LeaseEvent], LeadershipState] = {
    (LeadershipState.FOLLOWER, LeaseEvent.ACQUIRED): LeadershipState.LEADER,
    (LeadershipState.FOLLOWER, LeaseEvent.SHUTDOWN): LeadershipState.STOPPED,
    (LeadershipState.LEADER, LeaseEvent.RENEWED): LeadershipState.LEADER,
    (LeadershipState.LEADER, LeaseEvent.RENEW_FAILED): LeadershipState.FOLLOWER,
    (LeadershipState.LEADER, LeaseEvent.RELEASED): LeadershipState.FOLLOWER,
    (LeadershipState.LEADER, LeaseEvent.SHUTDOWN): LeadershipState.STOPPED,
}


class LeaderElectionConfig(BaseModel):
    """Configuration for leader election."""

    identity: str = Field(min_length=1)
    lease_duration: float = Field(default=30, gt=0, description="Lease TTL in seconds")
    renew_deadline: float = Field(default=15, gt=0, description="Renew deadline in seconds")
    retry_period: float = Field(default=2, gt=0, description="Poll period in seconds")
    release_on_cancel: bool = Field(default=True)

    @model_validator(mode="after")
    def _check_timings(self) -> "LeaderElectionConfig":
        if self.lease_duration <= self.renew_deadline:
            raise ValueError("lease_duration must be greater than renew_deadline")
        if self.renew_deadline <= self.retry_period:
            raise ValueError("renew_deadline must be greater than retry_period")
        return self


StartedLeading = Callable[[asyncio.Event], Awaitable[Any]]


async def wait_for_event(event: asyncio.Event, timeout: float) -> bool:
    """Wait up to ``timeout`` seconds; True if the event was set."""
    try:
        await asyncio.wait_for(event.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False


class LeaderElector:
    """Runs a workload only while holding the lease."""

    def __init__(
        self,
        lock: LeaseLock,
        config: LeaderElectionConfig,
        on_started_leading: StartedLeading,
        on_stopped_leading: Optional[Callable[[], None]] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize leader elector.

        Args:
            lock: Lease backend.
            config: Election configuration.
            on_started_leading: Coroutine run while leading. It receives an
                event that is set when leadership ends and must return soon
                after.
            on_stopped_leading: Callback when losing leadership.
            metrics: Optional metrics collector.
            clock: Monotonic clock, replaceable in tests.
        """
        self.lock = lock
        self.config = config
        self.on_started_leading = on_started_leading
        self.on_stopped_leading = on_stopped_leading
        self.metrics = metrics
        self.clock = clock

        self.state = LeadershipState.FOLLOWER
        self.terms = 0

    def is_leader(self) -> bool:
        """Check if this replica currently leads."""
        return self.state == LeadershipState.LEADER

    def get_state(self) -> LeadershipState:
        return self.state

    def get_metrics(self) -> Dict[str, Any]:
        """Get election metrics."""
        return {
            "identity": self.config.identity,
            "state": self.state.value,
            "is_leader": self.is_leader(),
            "terms": self.terms,
        }

    def _transition(self, event: LeaseEvent) -> LeadershipState:
        try:
            new_state = TRANSITIONS[(self.state, event)]
        except KeyError:
            raise RuntimeError(
                f"invalid leadership transition: {self.state.value} on {event.value}"
            ) from None

        if new_state != self.state:
            logger.info(
                "leadership_transition",
                from_state=self.state.value,
                to_state=new_state.value,
                lease_event=event.value,
            )
            if self.metrics is not None and LeadershipState.LEADER in (self.state, new_state):
                self.metrics.set_leader(new_state == LeadershipState.LEADER)

        self.state = new_state
        return new_state

    async def run(self, shutdown: asyncio.Event) -> None:
        """Contend for the lease until ``shutdown`` is set.

        Losing the lease is not fatal: the elector falls back to follower and
        keeps polling.
        """
        bind_context(identity=self.config.identity)
        try:
            while not shutdown.is_set():
                if not await self._acquire(shutdown):
                    break

                event = await self._lead(shutdown)
                self._transition(event)
                if self.on_stopped_leading is not None:
                    self.on_stopped_leading()

                if event == LeaseEvent.SHUTDOWN:
                    return

                # Give other replicas a chance before contending again.
                if await wait_for_event(shutdown, self.config.retry_period):
                    break

            self._transition(LeaseEvent.SHUTDOWN)
        finally:
            unbind_context("identity")

    async def _acquire(self, shutdown: asyncio.Event) -> bool:
        """Poll the lease until acquired (True) or shutdown (False)."""
        logger.info("attempting_to_acquire_lease", retry_period=self.config.retry_period)

        while not shutdown.is_set():
            try:
                if await self.lock.acquire(self.config.identity, self.config.lease_duration):
                    self.terms += 1
                    self._transition(LeaseEvent.ACQUIRED)
                    return True
            except LeaseError as e:
                logger.warning("lease_acquire_failed", error=str(e))

            if await wait_for_event(shutdown, self.config.retry_period):
                return False

        return False

    async def _renew(self, shutdown: asyncio.Event) -> bool:
        """Renew the lease, retrying until the renew deadline passes.

        Returns:
            True only if the lease was actually renewed.
        """
        deadline = self.clock() + self.config.renew_deadline

        while True:
            remaining = deadline - self.clock()
            if remaining <= 0:
                return False

            try:
                renewed = await asyncio.wait_for(
                    self.lock.renew(self.config.identity, self.config.lease_duration),
                    timeout=remaining,
                )
                if renewed:
                    return True
                # Someone else holds the lease; no point retrying.
                logger.warning("lease_taken_over")
                return False
            except asyncio.TimeoutError:
                return False
            except LeaseError as e:
                logger.warning("lease_renew_failed", error=str(e))

            if await wait_for_event(shutdown, self.config.retry_period):
                # not renewed; the caller sees shutdown is set
                return False

    async def _run_workload(self, stop: asyncio.Event) -> None:
        logger.info("started_leading")
        try:
            await self.on_started_leading(stop)
        except asyncio.CancelledError:
            raise
        except Exception:
            # Leading must never take the process down.
            logger.exception("leader_workload_failed")

    async def _lead(self, shutdown: asyncio.Event) -> LeaseEvent:
        """Run the workload while renewing the lease.

        Returns:
            The event that ended leadership.
        """
        stop = asyncio.Event()
        task = asyncio.create_task(self._run_workload(stop))
        event = LeaseEvent.SHUTDOWN

        try:
            while True:
                if await wait_for_event(shutdown, self.config.retry_period):
                    event = LeaseEvent.SHUTDOWN
                    break
                if task.done():
                    event = LeaseEvent.RELEASED
                    break
                if not await self._renew(shutdown):
                    if shutdown.is_set():
                        event = LeaseEvent.SHUTDOWN
                    else:
                        event = LeaseEvent.RENEW_FAILED
                    break
                self._transition(LeaseEvent.RENEWED)
        finally:
            stop.set()
            await self._stop_workload(task)

        if event == LeaseEvent.RENEW_FAILED:
            logger.warning("leadership_lost", renew_deadline=self.config.renew_deadline)
        elif event == LeaseEvent.RELEASED or self.config.release_on_cancel:
            await self._release()

        logger.info("stopped_leading", reason=event.value)
        return event

    async def _stop_workload(self, task: "asyncio.Task[None]") -> None:
        try:
            await asyncio.wait_for(task, timeout=self.config.renew_deadline)
        except asyncio.TimeoutError:
            logger.warning("leader_workload_stop_timeout", timeout=self.config.renew_deadline)

    async def _release(self) -> None:
        try:
            await self.lock.release(self.config.identity)
            logger.info("lease_released")
        except LeaseError as e:
            logger.warning("lease_release_failed", error=str(e))
