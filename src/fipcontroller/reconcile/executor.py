"""Apply balancing decisions through the provider's assign call."""

import asyncio
from typing import Any, Awaitable, Callable

from fipcontroller.errors import MutationError, UnexpectedStatusError
from fipcontroller.logging import get_logger
from fipcontroller.models import Assignment
from fipcontroller.providers.base import CloudProvider
from fipcontroller.providers.hcloud_client import AssignResponse
from fipcontroller.retries import Backoff, always_retry, retry_on_error

logger = get_logger(__name__, component="executor")

# Hetzner answers a successful assign action with 201 Created.
ASSIGN_SUCCESS_STATUS = 201


class AssignmentExecutor:
    """Performs assignments with bounded retry."""

    def __init__(
        self,
        cloud: CloudProvider,
        backoff: Backoff,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.cloud = cloud
        self.backoff = backoff
        self._sleep = sleep

    async def execute(self, assignment: Assignment) -> AssignResponse:
        """Assign the floating IP to the chosen server.

        Every error from the call is retried until the backoff steps are used
        up. A call that returns is not retried, but its status must be 201.

        Raises:
            MutationError: If every attempt failed.
            UnexpectedStatusError: If the call returned another status.
        """
        floating_ip = assignment.floating_ip
        server = assignment.server

        def on_retry(attempt: int, error: BaseException, delay: float) -> None:
            logger.warning(
                "floating_ip_assign_retry",
                floating_ip=floating_ip.ip,
                server=server.name,
                attempt=attempt,
                max_attempts=self.backoff.steps,
                delay=round(delay, 3),
                error=str(error),
            )

        result = await retry_on_error(
            self.backoff,
            lambda: self.cloud.assign_floating_ip(floating_ip.id, server.id),
            retriable=always_retry,
            on_retry=on_retry,
            sleep=self._sleep,
        )

        if not result.success:
            raise MutationError(
                f"could not update floating IP '{floating_ip.ip}': {result.last_error}",
                floating_ip=floating_ip.ip,
                attempts=result.attempts,
                last_error=result.last_error,
            )

        response: AssignResponse = result.output
        if response.status_code != ASSIGN_SUCCESS_STATUS:
            raise UnexpectedStatusError(
                f"could not update floating IP '{floating_ip.ip}': got HTTP code "
                f"{response.status_code}, expected {ASSIGN_SUCCESS_STATUS}",
                floating_ip=floating_ip.ip,
                status_code=response.status_code,
                expected=ASSIGN_SUCCESS_STATUS,
            )

        return response
