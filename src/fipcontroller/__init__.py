"""fip-controller: keeps Hetzner Cloud floating IPs on healthy Kubernetes nodes.

A single elected replica periodically matches ready cluster nodes to their
cloud servers and reassigns every floating IP that is unassigned or parked on
a server that no longer backs a ready node.
"""

__version__ = "0.3.0"

# Logging exports
from fipcontroller.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Config exports
from fipcontroller.config import Config, load_config

# Error exports
from fipcontroller.errors import (
    APIError,
    ClientInitializationError,
    ConfigurationError,
    FIPControllerError,
    LeaseError,
    MatchError,
    MutationError,
    ReconciliationError,
    ResolutionError,
    SourceError,
    UnexpectedStatusError,
)

# Model exports
from fipcontroller.models import (
    AddressType,
    Assignment,
    ClusterMember,
    FloatingIP,
    NodeAddress,
    ReconcileReport,
    Server,
)

# Controller exports
from fipcontroller.controller import (
    ControlLoop,
    ControllerContext,
    LoopState,
    Reconciler,
    run_controller,
)
from fipcontroller.cluster import LeaderElector, LeadershipState
from fipcontroller.retries import Backoff

__all__ = [
    "__version__",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    # Config
    "Config",
    "load_config",
    # Errors
    "FIPControllerError",
    "ConfigurationError",
    "ClientInitializationError",
    "APIError",
    "LeaseError",
    "ReconciliationError",
    "ResolutionError",
    "MatchError",
    "SourceError",
    "MutationError",
    "UnexpectedStatusError",
    # Models
    "AddressType",
    "NodeAddress",
    "ClusterMember",
    "Server",
    "FloatingIP",
    "Assignment",
    "ReconcileReport",
    # Controller
    "ControllerContext",
    "Reconciler",
    "ControlLoop",
    "LoopState",
    "run_controller",
    "LeaderElector",
    "LeadershipState",
    "Backoff",
]
