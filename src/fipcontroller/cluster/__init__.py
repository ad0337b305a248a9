"""Leader election for redundant controller replicas."""

from fipcontroller.cluster.leader_election import (
    LeaderElectionConfig,
    LeaderElector,
    LeadershipState,
    LeaseEvent,
)
from fipcontroller.cluster.lease import (
    KubernetesLeaseLock,
    LeaseLock,
    LeaseRecord,
    MemoryLeaseLock,
)

__all__ = [
    "LeaderElectionConfig",
    "LeaderElector",
    "LeadershipState",
    "LeaseEvent",
    "LeaseLock",
    "LeaseRecord",
    "KubernetesLeaseLock",
    "MemoryLeaseLock",
]
