"""
Client-side backoff gate armed by server 429 responses.
"""

import math
import time
from typing import Callable, Iterable, Optional

from shared.errors import RateLimitGateBlockedError
from shared.logging import get_logger

# Endpoints that must stay reachable during a backoff window so a session
# can always be recovered or terminated.
AUTH_BYPASS_PATHS = ("/auth/login", "/auth/refresh-token", "/auth/profile", "/auth/logout")

DEFAULT_MAX_BACKOFF_SECONDS = 30


class RateLimitGate:
    """Tracks a single "suppressed until" timestamp.

    The local window is capped well below what the server may ask for: it only
    needs to stop an immediate retry storm, the server keeps enforcing its own
    full window.
    """

    def __init__(self, max_backoff_seconds: int = DEFAULT_MAX_BACKOFF_SECONDS,
                 clock: Optional[Callable[[], float]] = None):
        self.max_backoff_seconds = max_backoff_seconds
        self.clock = clock or time.time
        self.suppressed_until_epoch_ms = 0.0
        self.logger = get_logger("portal_client.rate_limit_gate")

    def _now_ms(self) -> float:
        return self.clock() * 1000.0

    def is_blocked(self, path: str, bypass_paths: Iterable[str] = AUTH_BYPASS_PATHS) -> bool:
        if self._now_ms() >= self.suppressed_until_epoch_ms:
            return False
        return not any(entry in (path or "") for entry in bypass_paths)

    def remaining_seconds(self) -> int:
        remaining_ms = self.suppressed_until_epoch_ms - self._now_ms()
        if remaining_ms <= 0:
            return 0
        return math.ceil(remaining_ms / 1000.0)

    def check(self, path: str, bypass_paths: Iterable[str] = AUTH_BYPASS_PATHS) -> None:
        """Raise RateLimitGateBlockedError if path may not be sent right now."""
        if self.is_blocked(path, bypass_paths):
            raise RateLimitGateBlockedError(retry_after=self.remaining_seconds(), path=path)

    def arm(self, server_retry_after_seconds: float) -> int:
        """Open a backoff window of min(server value, cap) seconds.

        The window only ever extends: a shorter value arriving after a longer
        one leaves the longer window in place. Returns the local window length.
        """
        local_seconds = max(0, min(server_retry_after_seconds, self.max_backoff_seconds))
        candidate = self._now_ms() + local_seconds * 1000.0
        if candidate > self.suppressed_until_epoch_ms:
            self.suppressed_until_epoch_ms = candidate

        self.logger.warning(
            "Rate limited by server, local gate active",
            server_retry_after=server_retry_after_seconds,
            local_backoff=local_seconds
        )
        return local_seconds

    def reset(self) -> None:
        self.suppressed_until_epoch_ms = 0.0
