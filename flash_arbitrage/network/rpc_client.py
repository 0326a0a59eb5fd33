"""
JSON-RPC over HTTP with endpoint fallback and health tracking.

Callers only see ``call`` and the typed read helpers plus ``health``; the
endpoint rotation state stays private to this module.
"""

import asyncio
import itertools
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from ..exceptions import ConfigurationError, NetworkError, NonceOrGasConflict, RpcError
from ..types import ConnectionState
from ..utils import hex_to_bytes, hex_to_int, to_hex
from .retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

RATE_LIMIT_CODES = {-32005, 429}
RATE_LIMIT_MARKERS = ("too many requests", "rate limit", "limit exceeded", "429")
NONCE_GAS_MARKERS = (
    "nonce too low",
    "nonce too high",
    "replacement transaction underpriced",
    "already known",
    "max fee per gas less than block base fee",
    "transaction underpriced",
)


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


def classify_rpc_error(
    error: Dict[str, Any], endpoint: str, method: str
) -> Exception:
    """Map a JSON-RPC error object onto the exception taxonomy."""
    message = str(error.get("message", error))
    code = error.get("code")
    lowered = message.lower()
    details = {"method": method, "data": error.get("data")}

    if code in RATE_LIMIT_CODES or any(m in lowered for m in RATE_LIMIT_MARKERS):
        return NetworkError(
            f"Rate limited by {endpoint}: {message}", endpoint=endpoint, details=details
        )
    if any(m in lowered for m in NONCE_GAS_MARKERS):
        return NonceOrGasConflict(message, details=details)
    return RpcError(message, code=code, endpoint=endpoint, details=details)


class ResilientRpcClient:
    """
    JSON-RPC client that falls back to the next endpoint on transient errors.

    A failed request is retried once against the next endpoint in the list and
    the active endpoint stays advanced (round-robin). Health is HEALTHY after a
    first-try success, DEGRADED after a fallback success or an isolated
    failure, CRITICAL after ``critical_after`` consecutive failed calls.
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        *,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 5.0,
        critical_after: int = 3,
    ):
        if not endpoints:
            raise ConfigurationError("At least one RPC endpoint is required")
        self._endpoints: List[str] = list(endpoints)
        self._state = ConnectionState()
        self._session = session
        self._owns_session = session is None
        self._request_timeout = request_timeout
        self._critical_after = critical_after
        self._ids = itertools.count(1)
        self._consecutive_failures = 0
        self._health = HealthStatus.HEALTHY
        self._fallback_policy = RetryPolicy(
            max_attempts=2, base_delay=0.0, jitter=0.0, retry_on=(NetworkError,)
        )

    @property
    def health(self) -> HealthStatus:
        return self._health

    @property
    def active_endpoint(self) -> str:
        return self._endpoints[self._state.current_endpoint_index]

    async def __aenter__(self) -> "ResilientRpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    def _advance_endpoint(self) -> None:
        self._state.current_endpoint_index = (
            self._state.current_endpoint_index + 1
        ) % len(self._endpoints)

    async def call(self, method: str, params: Optional[Sequence[Any]] = None) -> Any:
        """
        Execute one JSON-RPC request.

        Raises:
            NetworkError: If both the active and the backup endpoint failed
            RpcError: On a deterministic node error (not retried)
            NonceOrGasConflict: On nonce or fee rejection (not retried)
        """
        params = list(params or [])
        attempt_count = 0

        async def attempt() -> Any:
            nonlocal attempt_count
            attempt_count += 1
            endpoint = self.active_endpoint
            try:
                return await self._post(endpoint, method, params)
            except NetworkError:
                self._advance_endpoint()
                raise

        try:
            result = await with_retry(
                self._fallback_policy, attempt, operation=f"rpc {method}"
            )
        except NetworkError:
            self._record_failure()
            raise

        self._record_success(used_fallback=attempt_count > 1)
        return result

    async def _post(self, endpoint: str, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=self._request_timeout)
        try:
            async with session.post(endpoint, json=payload, timeout=timeout) as response:
                if response.status == 429 or response.status >= 500:
                    raise NetworkError(
                        f"HTTP {response.status} from {endpoint}",
                        endpoint=endpoint,
                        status_code=response.status,
                    )
                response.raise_for_status()
                body = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Timeout after {self._request_timeout}s calling {method}",
                endpoint=endpoint,
            ) from e
        except aiohttp.ClientResponseError as e:
            raise NetworkError(
                f"HTTP {e.status} from {endpoint}", endpoint=endpoint, status_code=e.status
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Connection error on {endpoint}: {e}", endpoint=endpoint) from e

        if not isinstance(body, dict):
            raise NetworkError(f"Malformed JSON-RPC response from {endpoint}", endpoint=endpoint)
        if body.get("error"):
            raise classify_rpc_error(body["error"], endpoint, method)
        return body.get("result")

    def _record_success(self, used_fallback: bool) -> None:
        self._consecutive_failures = 0
        self._set_health(HealthStatus.DEGRADED if used_fallback else HealthStatus.HEALTHY)

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= self._critical_after:
            self._set_health(HealthStatus.CRITICAL)
        else:
            self._set_health(HealthStatus.DEGRADED)

    def _set_health(self, status: HealthStatus) -> None:
        if status is not self._health:
            log = logger.critical if status is HealthStatus.CRITICAL else logger.info
            log(f"RPC_HEALTH: {self._health.value} -> {status.value} ({self.active_endpoint})")
        self._health = status

    # Typed read helpers

    async def block_number(self) -> int:
        return hex_to_int(await self.call("eth_blockNumber"))

    async def gas_price(self) -> int:
        return hex_to_int(await self.call("eth_gasPrice"))

    async def chain_id(self) -> int:
        return hex_to_int(await self.call("eth_chainId"))

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call("eth_getTransactionByHash", [tx_hash])

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return hex_to_int(await self.call("eth_getTransactionCount", [address, block]))

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return hex_to_int(await self.call("eth_estimateGas", [tx]))

    async def eth_call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        result = await self.call("eth_call", [{"to": to, "data": to_hex(data)}, block])
        return hex_to_bytes(result)
