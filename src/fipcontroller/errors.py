"""Exception hierarchy for the floating IP controller.

Errors fall in two groups:
- Startup errors (``ConfigurationError``, ``ClientInitializationError``) are
  fatal and only ever raised before the control loop starts.
- Reconciliation errors are local to a single pass. The control loop logs and
  absorbs them; they never reach the leader election or the process.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class FIPControllerError(Exception):
    """Base exception for all controller errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================================
# Startup errors
# ============================================================================


class ConfigurationError(FIPControllerError):
    """Configuration is missing or invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIGURATION_ERROR", details=details)


class ClientInitializationError(FIPControllerError):
    """A cloud or cluster API client could not be constructed."""

    def __init__(self, message: str, client: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["client"] = client
        super().__init__(message, code="CLIENT_INIT_ERROR", details=details)


# ============================================================================
# Remote API errors
# ============================================================================


class APIError(FIPControllerError):
    """A remote API call failed at the transport or HTTP level."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        if error_code:
            details["error_code"] = error_code
        super().__init__(message, code="API_ERROR", details=details)
        self.status_code = status_code
        self.error_code = error_code


class LeaseError(FIPControllerError):
    """The lease backend could not be read or written."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="LEASE_ERROR", details=details)


# ============================================================================
# Reconciliation errors
# ============================================================================


class ReconciliationError(FIPControllerError):
    """Base class for errors confined to one reconciliation pass."""


class ResolutionError(ReconciliationError):
    """No addressable ready cluster members."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="RESOLUTION_ERROR", details=details)


class MatchError(ReconciliationError):
    """No cloud server matched a cluster member address."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="MATCH_ERROR", details=details)


class SourceError(ReconciliationError):
    """The floating IP set could not be obtained."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="SOURCE_ERROR", details=details)


class MutationError(ReconciliationError):
    """An assignment call kept failing until the retry budget ran out."""

    def __init__(
        self,
        message: str,
        floating_ip: str,
        attempts: int,
        last_error: Optional[BaseException] = None,
    ):
        details = {"floating_ip": floating_ip, "attempts": attempts}
        if last_error is not None:
            details["last_error"] = str(last_error)
        super().__init__(message, code="MUTATION_ERROR", details=details)
        self.floating_ip = floating_ip
        self.attempts = attempts
        self.last_error = last_error


class UnexpectedStatusError(ReconciliationError):
    """An assignment call returned, but not with the documented success status."""

    def __init__(self, message: str, floating_ip: str, status_code: int, expected: int):
        super().__init__(
            message,
            code="UNEXPECTED_STATUS",
            details={
                "floating_ip": floating_ip,
                "status_code": status_code,
                "expected": expected,
            },
        )
        self.floating_ip = floating_ip
        self.status_code = status_code
        self.expected = expected
