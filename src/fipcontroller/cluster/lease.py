"""Lease capability used for leader election.

A lease is a renewable, time-bounded lock held by one identity. The leader
elector only depends on :class:`LeaseLock`; two backends are provided:
Kubernetes ``coordination.k8s.io/v1`` Lease objects and an in-process store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from fipcontroller.errors import APIError, LeaseError
from fipcontroller.logging import get_logger
from fipcontroller.providers.kubernetes_client import KubernetesClient

logger = get_logger(__name__, component="lease")

Clock = Callable[[], datetime]

MICROTIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LeaseRecord:
    """Current state of a lease."""

    holder: str
    duration: float
    acquire_time: datetime
    renew_time: datetime
    transitions: int = 0

    def expired(self, now: datetime) -> bool:
        return self.renew_time + timedelta(seconds=self.duration) < now

    def held_by_other(self, identity: str, now: datetime) -> bool:
        return bool(self.holder) and self.holder != identity and not self.expired(now)


class LeaseLock(ABC):
    """Acquire / renew / release capability of a coordination backend."""

    @abstractmethod
    async def acquire(self, identity: str, ttl: float) -> bool:
        """Take the lease if it is free, expired or already ours.

        Returns:
            True if ``identity`` holds the lease afterwards.
        """

    @abstractmethod
    async def renew(self, identity: str, ttl: float) -> bool:
        """Extend the lease. Fails if another identity holds it."""

    @abstractmethod
    async def release(self, identity: str) -> None:
        """Give the lease up if ``identity`` holds it."""

    @abstractmethod
    async def get(self) -> Optional[LeaseRecord]:
        """Read the current lease record."""


class MemoryLeaseLock(LeaseLock):
    """In-process lease.

    Instances sharing one ``store`` dict contend for the same lease, which
    lets several electors in one process behave like separate replicas.
    """

    def __init__(
        self,
        name: str = "fip",
        store: Optional[Dict[str, LeaseRecord]] = None,
        clock: Clock = utcnow,
    ):
        self.name = name
        self.store = store if store is not None else {}
        self.clock = clock

    async def get(self) -> Optional[LeaseRecord]:
        return self.store.get(self.name)

    async def acquire(self, identity: str, ttl: float) -> bool:
        return self._take(identity, ttl, renew_only=False)

    async def renew(self, identity: str, ttl: float) -> bool:
        return self._take(identity, ttl, renew_only=True)

    async def release(self, identity: str) -> None:
        record = self.store.get(self.name)
        if record is not None and record.holder == identity:
            self.store[self.name] = replace(record, holder="", duration=1, renew_time=self.clock())

    def _take(self, identity: str, ttl: float, renew_only: bool) -> bool:
        now = self.clock()
        record = self.store.get(self.name)

        if record is None:
            if renew_only:
                return False
            self.store[self.name] = LeaseRecord(
                holder=identity, duration=ttl, acquire_time=now, renew_time=now
            )
            return True

        if renew_only and record.holder != identity:
            return False
        if record.held_by_other(identity, now):
            return False

        if record.holder == identity:
            self.store[self.name] = replace(record, duration=ttl, renew_time=now)
        else:
            self.store[self.name] = LeaseRecord(
                holder=identity,
                duration=ttl,
                acquire_time=now,
                renew_time=now,
                transitions=record.transitions + 1,
            )
        return True


def _format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(MICROTIME_FORMAT)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class KubernetesLeaseLock(LeaseLock):
    """Lease stored as a ``coordination.k8s.io/v1`` Lease object.

    Updates carry the object's ``resourceVersion``, so two replicas racing for
    the lease cannot both win: the loser gets a 409 and reports failure.
    """

    def __init__(
        self,
        client: KubernetesClient,
        name: str,
        namespace: str,
        clock: Clock = utcnow,
    ):
        self.client = client
        self.name = name
        self.namespace = namespace
        self.clock = clock

    @staticmethod
    def _record_from_object(lease: Dict[str, Any]) -> LeaseRecord:
        try:
            spec = lease.get("spec") or {}
            renew_time = _parse_time(spec.get("renewTime"))
            acquire_time = _parse_time(spec.get("acquireTime"))
            epoch = datetime.fromtimestamp(0, timezone.utc)
            return LeaseRecord(
                holder=spec.get("holderIdentity") or "",
                duration=float(spec.get("leaseDurationSeconds") or 0),
                acquire_time=acquire_time or renew_time or epoch,
                renew_time=renew_time or epoch,
                transitions=int(spec.get("leaseTransitions") or 0),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise LeaseError(f"malformed lease object: {e}") from e

    def _object(
        self,
        record: LeaseRecord,
        resource_version: Optional[str] = None,
    ) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"name": self.name, "namespace": self.namespace}
        if resource_version:
            metadata["resourceVersion"] = resource_version
        return {
            "apiVersion": "coordination.k8s.io/v1",
            "kind": "Lease",
            "metadata": metadata,
            "spec": {
                "holderIdentity": record.holder,
                "leaseDurationSeconds": max(1, int(round(record.duration))),
                "acquireTime": _format_time(record.acquire_time),
                "renewTime": _format_time(record.renew_time),
                "leaseTransitions": record.transitions,
            },
        }

    async def _read(self) -> Optional[Dict[str, Any]]:
        try:
            return await self.client.get_lease(self.namespace, self.name)
        except APIError as e:
            raise LeaseError(f"could not read lease {self.namespace}/{self.name}: {e}") from e

    async def get(self) -> Optional[LeaseRecord]:
        lease = await self._read()
        return self._record_from_object(lease) if lease is not None else None

    async def acquire(self, identity: str, ttl: float) -> bool:
        return await self._take(identity, ttl, renew_only=False)

    async def renew(self, identity: str, ttl: float) -> bool:
        return await self._take(identity, ttl, renew_only=True)

    async def _take(self, identity: str, ttl: float, renew_only: bool) -> bool:
        now = self.clock()
        lease = await self._read()

        if lease is None:
            if renew_only:
                return False
            record = LeaseRecord(holder=identity, duration=ttl, acquire_time=now, renew_time=now)
            return await self._write(record, create=True)

        current = self._record_from_object(lease)
        if renew_only and current.holder != identity:
            return False
        if current.held_by_other(identity, now):
            return False

        if current.holder == identity:
            record = replace(current, duration=ttl, renew_time=now)
        else:
            record = LeaseRecord(
                holder=identity,
                duration=ttl,
                acquire_time=now,
                renew_time=now,
                transitions=current.transitions + 1,
            )
        resource_version = (lease.get("metadata") or {}).get("resourceVersion")
        return await self._write(record, resource_version=resource_version)

    async def _write(
        self,
        record: LeaseRecord,
        resource_version: Optional[str] = None,
        create: bool = False,
    ) -> bool:
        body = self._object(record, resource_version)
        try:
            if create:
                await self.client.create_lease(self.namespace, body)
            else:
                await self.client.replace_lease(self.namespace, self.name, body)
        except APIError as e:
            if e.status_code == 409:
                logger.debug("lease_write_conflict", lease=self.name, holder=record.holder)
                return False
            raise LeaseError(f"could not write lease {self.namespace}/{self.name}: {e}") from e
        return True

    async def release(self, identity: str) -> None:
        lease = await self._read()
        if lease is None:
            return

        current = self._record_from_object(lease)
        if current.holder != identity:
            return

        record = replace(current, holder="", duration=1, renew_time=self.clock())
        resource_version = (lease.get("metadata") or {}).get("resourceVersion")
        await self._write(record, resource_version=resource_version)
