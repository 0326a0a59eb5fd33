"""Fixed-window rate limiting keyed by operation name."""

import logging
from typing import Dict, Optional

from ..exceptions import RateLimitExceeded
from ..interfaces import SystemTimeProvider, TimeProvider
from ..types import RateLimiterWindow

logger = logging.getLogger(__name__)


class WindowRateLimiter:
    """
    Allows at most ``limit`` operations per ``window_seconds`` for each name.

    The window starts at the first call and resets on the first call made
    after it ends.
    """

    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60.0,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._time = time_provider or SystemTimeProvider()
        self._windows: Dict[str, RateLimiterWindow] = {}

    def is_allowed(self, operation: str) -> bool:
        """Consume one slot for ``operation`` if one is available."""
        now = self._time.current_timestamp()
        window = self._windows.get(operation)
        if window is None or now > window.window_reset_ts:
            self._windows[operation] = RateLimiterWindow(
                count=1, window_reset_ts=now + self.window_seconds
            )
            return True
        if window.count >= self.limit:
            return False
        window.count += 1
        return True

    def acquire(self, operation: str) -> None:
        """
        Raises:
            RateLimitExceeded: If the window budget for ``operation`` is spent
        """
        if not self.is_allowed(operation):
            logger.warning(f"Rate limit hit for {operation} ({self.limit}/{self.window_seconds}s)")
            raise RateLimitExceeded(f"Rate limit exceeded for {operation}", operation=operation)

    def remaining(self, operation: str) -> int:
        window = self._windows.get(operation)
        if window is None or self._time.current_timestamp() > window.window_reset_ts:
            return self.limit
        return max(0, self.limit - window.count)
