"""
Circuit breaker for one logical operation.

closed --(max_failures consecutive failures)--> open
open --(reset_timeout elapsed)--> half-open: exactly one probe call passes
half-open --success--> closed, --failure--> open (timer restarts)
"""

import logging
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from ..exceptions import CircuitOpenError
from ..interfaces import SystemTimeProvider, TimeProvider
from ..types import CircuitBreakerState

logger = logging.getLogger(__name__)


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        *,
        max_failures: int = 5,
        reset_timeout: float = 60.0,
        excluded_exceptions: Tuple[Type[BaseException], ...] = (),
        time_provider: Optional[TimeProvider] = None,
    ):
        """
        Args:
            name: Operation name used in errors and logs
            max_failures: Consecutive failures that open the breaker
            reset_timeout: Seconds the breaker stays open before a probe
            excluded_exceptions: Outcomes that propagate without counting as
                failures (negative results rather than malfunctions)
            time_provider: Clock source
        """
        self.name = name
        self.max_failures = max_failures
        self.reset_timeout = reset_timeout
        self._excluded = excluded_exceptions
        self._time = time_provider or SystemTimeProvider()
        self._state = CircuitBreakerState()
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state.is_open

    async def call(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Invoke ``fn`` through the breaker.

        Raises:
            CircuitOpenError: Without invoking ``fn`` while open
        """
        is_probe = self._admit()
        try:
            result = await fn(*args, **kwargs)
        except self._excluded:
            self._on_success(is_probe)
            raise
        except Exception:
            self._on_failure(is_probe)
            raise
        self._on_success(is_probe)
        return result

    def _admit(self) -> bool:
        """Return True if this call is the half-open probe."""
        if not self._state.is_open:
            return False

        elapsed = self._time.current_timestamp() - self._state.last_failure_ts
        if elapsed >= self.reset_timeout and not self._probe_in_flight:
            self._probe_in_flight = True
            logger.info(f"Circuit {self.name} half-open, allowing one probe call")
            return True

        raise CircuitOpenError(
            f"Circuit {self.name} is open",
            operation=self.name,
            retry_after=max(0.0, self.reset_timeout - elapsed),
        )

    def _on_success(self, is_probe: bool) -> None:
        if is_probe:
            self._probe_in_flight = False
            self._state.is_open = False
            logger.info(f"Circuit {self.name} closed after successful probe")
        elif self._state.is_open:
            # Admitted before the breaker opened; only the probe may close it
            logger.debug(f"Circuit {self.name} ignoring late success while open")
            return
        self._state.consecutive_failures = 0

    def _on_failure(self, is_probe: bool) -> None:
        now = self._time.current_timestamp()
        self._state.consecutive_failures += 1
        if is_probe:
            self._probe_in_flight = False
            self._state.is_open = True
            self._state.last_failure_ts = now
            logger.warning(f"Circuit {self.name} probe failed, reopening")
            return

        if self._state.consecutive_failures >= self.max_failures and not self._state.is_open:
            self._state.is_open = True
            self._state.last_failure_ts = now
            logger.error(
                f"Circuit {self.name} opened after "
                f"{self._state.consecutive_failures} consecutive failures"
            )

    def reset(self) -> None:
        self._state = CircuitBreakerState()
        self._probe_in_flight = False
