"""
Reconnecting ``eth_subscribe`` stream over an aiohttp WebSocket.

The iterator survives socket drops: it closes the socket, rotates to the
next URL and reconnects with backoff. A heartbeat ``eth_blockNumber``
request that goes unanswered for a full interval is treated as a drop.
Once ``max_retries`` reconnects in a row have failed the health turns
CRITICAL and the iterator ends instead of raising.
"""

import asyncio
import contextlib
import itertools
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Sequence, Set

import aiohttp

from ..exceptions import ConfigurationError, NetworkError
from ..interfaces import RandomProvider
from ..types import ConnectionState
from .retry import RetryPolicy
from .rpc_client import HealthStatus

logger = logging.getLogger(__name__)


class ReconnectingSubscription:
    def __init__(
        self,
        urls: Sequence[str],
        *,
        session: Optional[aiohttp.ClientSession] = None,
        max_retries: int = 10,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        heartbeat_interval: float = 30.0,
        connect_timeout: float = 10.0,
        rng: Optional[RandomProvider] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not urls:
            raise ConfigurationError("At least one WebSocket URL is required")
        self._urls: List[str] = list(urls)
        self._session = session
        self._owns_session = session is None
        self._max_retries = max_retries
        self._backoff = RetryPolicy(
            max_attempts=max_retries + 1,
            base_delay=base_delay,
            multiplier=1.5,
            max_delay=max_delay,
        )
        self._heartbeat_interval = heartbeat_interval
        self._connect_timeout = connect_timeout
        self._rng = rng
        self._sleep = sleep
        self._state = ConnectionState()
        self._health = HealthStatus.HEALTHY
        self._ids = itertools.count(1)
        self._pending_heartbeats: Set[int] = set()

    @property
    def health(self) -> HealthStatus:
        return self._health

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    @property
    def current_url(self) -> str:
        return self._urls[self._state.current_endpoint_index]

    def reset(self) -> None:
        """Clear exhausted state so ``subscribe`` can be attempted again."""
        self._state.reconnect_attempts = 0
        self._health = HealthStatus.DEGRADED

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def subscribe(self, event_kind: str) -> AsyncIterator[Any]:
        """
        Yield the ``result`` payload of every notification for ``event_kind``.

        Ends (without raising) when reconnect attempts are exhausted.
        """
        while True:
            try:
                ws = await self._connect()
            except NetworkError as e:
                if not await self._schedule_reconnect(e):
                    return
                continue

            try:
                async with contextlib.aclosing(
                    self._read_notifications(ws, event_kind)
                ) as notifications:
                    async for item in notifications:
                        yield item
                error = NetworkError("WebSocket stream ended", endpoint=self.current_url)
            except NetworkError as e:
                error = e
            finally:
                self._state.is_connected = False
                await ws.close()

            if not await self._schedule_reconnect(error):
                return

    async def _connect(self) -> aiohttp.ClientWebSocketResponse:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        url = self.current_url
        try:
            return await asyncio.wait_for(
                self._session.ws_connect(url), timeout=self._connect_timeout
            )
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Timed out connecting to {url}", endpoint=url) from e
        except (aiohttp.ClientError, OSError) as e:
            raise NetworkError(f"Failed to connect to {url}: {e}", endpoint=url) from e

    async def _read_notifications(
        self, ws: aiohttp.ClientWebSocketResponse, event_kind: str
    ) -> AsyncIterator[Any]:
        subscription_id = await self._send_subscribe(ws, event_kind)
        self._on_connected(event_kind)

        heartbeat = asyncio.create_task(self._heartbeat(ws))
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.ERROR:
                    raise NetworkError(
                        f"WebSocket error on {self.current_url}: {ws.exception()}",
                        endpoint=self.current_url,
                    )
                if msg.type != aiohttp.WSMsgType.TEXT:
                    continue
                try:
                    payload = json.loads(msg.data)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping non-JSON frame from {self.current_url}")
                    continue

                if payload.get("method") == "eth_subscription":
                    params = payload.get("params") or {}
                    if params.get("subscription") == subscription_id:
                        yield params.get("result")
                elif payload.get("id") in self._pending_heartbeats:
                    self._pending_heartbeats.discard(payload["id"])
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat

    async def _send_subscribe(
        self, ws: aiohttp.ClientWebSocketResponse, event_kind: str
    ) -> str:
        request_id = next(self._ids)
        try:
            await ws.send_json(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "method": "eth_subscribe",
                    "params": [event_kind],
                }
            )
            response = await asyncio.wait_for(ws.receive_json(), timeout=self._connect_timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"No subscription ack from {self.current_url}", endpoint=self.current_url
            ) from e
        except (aiohttp.ClientError, ConnectionError, TypeError, ValueError) as e:
            raise NetworkError(
                f"Subscribe failed on {self.current_url}: {e}", endpoint=self.current_url
            ) from e

        if response.get("error") or not response.get("result"):
            raise NetworkError(
                f"Subscription rejected by {self.current_url}: {response.get('error')}",
                endpoint=self.current_url,
            )
        return response["result"]

    async def _heartbeat(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while not ws.closed:
            await asyncio.sleep(self._heartbeat_interval)
            if self._pending_heartbeats:
                logger.error(f"Heartbeat unanswered on {self.current_url}, dropping socket")
                await ws.close()
                return
            request_id = next(self._ids)
            self._pending_heartbeats.add(request_id)
            try:
                await ws.send_json(
                    {"jsonrpc": "2.0", "id": request_id, "method": "eth_blockNumber", "params": []}
                )
            except (aiohttp.ClientError, ConnectionError) as e:
                logger.error(f"Heartbeat send failed on {self.current_url}: {e}")
                await ws.close()
                return

    def _on_connected(self, event_kind: str) -> None:
        if self._state.reconnect_attempts:
            logger.info(
                f"Reconnected to {self.current_url} after "
                f"{self._state.reconnect_attempts} attempt(s)"
            )
        else:
            logger.info(f"Subscribed to {event_kind} on {self.current_url}")
        self._state.is_connected = True
        self._state.reconnect_attempts = 0
        self._pending_heartbeats.clear()
        self._health = HealthStatus.HEALTHY

    async def _schedule_reconnect(self, error: Exception) -> bool:
        """Rotate endpoint and back off; False once retries are exhausted."""
        logger.warning(f"WebSocket {self.current_url} unavailable: {error}")
        self._state.is_connected = False
        self._state.current_endpoint_index = (
            self._state.current_endpoint_index + 1
        ) % len(self._urls)
        self._state.reconnect_attempts += 1

        if self._state.reconnect_attempts > self._max_retries:
            self._health = HealthStatus.CRITICAL
            logger.critical(
                f"Giving up after {self._max_retries} reconnect attempts; "
                "subscription health is CRITICAL"
            )
            return False

        self._health = HealthStatus.DEGRADED
        delay = self._backoff.delay_for(self._state.reconnect_attempts - 1, self._rng)
        logger.info(
            f"Reconnecting to {self.current_url} in {delay:.2f}s "
            f"(attempt {self._state.reconnect_attempts}/{self._max_retries})"
        )
        await self._sleep(delay)
        return True
