"""
Single-flight coordination for token refresh.

At most one refresh runs at a time. Callers that need a refresh while one is
in flight are parked on a future and settled with that refresh's outcome.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Union

from shared.logging import get_logger

PROCEED = "proceed"


class RefreshCoordinator:
    """Tracks the in-flight refresh and the callers waiting on it."""

    def __init__(self):
        self.in_flight = False
        self.waiters: List[asyncio.Future] = []
        self._task: Optional[asyncio.Task] = None
        self.logger = get_logger("portal_client.refresh_coordinator")

    def acquire_or_queue(self) -> Union[str, "asyncio.Future[str]"]:
        """Become the refresher (returns PROCEED) or get a future for the in-flight result."""
        if not self.in_flight:
            self.in_flight = True
            return PROCEED

        waiter = asyncio.get_running_loop().create_future()
        self.waiters.append(waiter)
        self.logger.debug("Queued behind in-flight refresh", waiters=len(self.waiters))
        return waiter

    def settle(self, error: Optional[BaseException], new_token: Optional[str]) -> None:
        """Resolve or reject every queued waiter, then release the in-flight slot."""
        waiters, self.waiters = self.waiters, []
        self.in_flight = False

        for waiter in waiters:
            # A waiter whose caller was cancelled is already done.
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(new_token)

        if waiters:
            self.logger.debug("Settled refresh waiters", count=len(waiters), failed=error is not None)

    async def run(self, refresh_fn: Callable[[], Awaitable[str]]) -> str:
        """Run refresh_fn single-flight and return the refreshed token.

        The refresh runs as its own task so that cancelling the caller that
        started it does not abandon the waiters: the task always runs to
        completion and its outcome settles every waiter exactly once. The
        refresher's exception is raised to the refresher and every waiter.
        """
        outcome = self.acquire_or_queue()
        if outcome is not PROCEED:
            return await outcome

        task = asyncio.ensure_future(refresh_fn())
        self._task = task
        task.add_done_callback(self._settle_from_task)
        return await asyncio.shield(task)

    def _settle_from_task(self, task: "asyncio.Task[str]") -> None:
        self._task = None
        if task.cancelled():
            self.settle(asyncio.CancelledError("Token refresh was cancelled"), None)
        elif task.exception() is not None:
            self.settle(task.exception(), None)
        else:
            self.settle(None, task.result())
