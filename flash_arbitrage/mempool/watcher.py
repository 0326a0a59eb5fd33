"""
Pending transaction watcher.

Consumes ``newPendingTransactions`` hashes, drops duplicates, fetches each
transaction with a deadline, decodes it and hands swaps to a handler. A
failure while processing one event is logged and never stops the stream.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..exceptions import FlashArbitrageError, NetworkError, RpcError
from ..types import DecodedSwap, PendingTransaction
from .cache import BoundedSeenCache
from .decoder import MempoolDecoder

logger = logging.getLogger(__name__)

SwapHandler = Callable[[DecodedSwap], Awaitable[Any]]


class MempoolWatcher:
    def __init__(
        self,
        subscription,
        rpc,
        decoder: MempoolDecoder,
        handler: SwapHandler,
        *,
        seen_cache: Optional[BoundedSeenCache] = None,
        fetch_timeout: float = 3.0,
        metrics_sink=None,
    ):
        self._subscription = subscription
        self._rpc = rpc
        self._decoder = decoder
        self._handler = handler
        self._seen = seen_cache or BoundedSeenCache()
        self._fetch_timeout = fetch_timeout
        self._metrics_sink = metrics_sink
        self.stats = {"received": 0, "duplicates": 0, "decoded": 0, "errors": 0}

    async def run(self) -> None:
        """Process notifications until the subscription gives up."""
        async for notification in self._subscription.subscribe("newPendingTransactions"):
            await self.process(notification)
        logger.warning(f"Mempool stream ended (health={self._subscription.health.value})")

    async def process(self, notification: Any) -> Optional[DecodedSwap]:
        """Handle one notification: a tx hash, or a full tx object on some nodes."""
        self.stats["received"] += 1
        if isinstance(notification, dict):
            tx_hash = notification.get("hash")
            raw = notification
        else:
            tx_hash = notification
            raw = None

        if not tx_hash or not self._seen.add(tx_hash):
            self.stats["duplicates"] += 1
            return None

        if raw is None:
            raw = await self._fetch(tx_hash)
            if raw is None:
                return None

        try:
            tx = PendingTransaction.from_rpc(raw)
        except ValueError as e:
            self.stats["errors"] += 1
            logger.debug(f"Skipping malformed transaction {tx_hash}: {e}")
            return None

        swap = self._decoder.decode(tx)
        if swap is None:
            return None

        self.stats["decoded"] += 1
        self._record(swap)
        try:
            await self._handler(swap)
        except FlashArbitrageError as e:
            self.stats["errors"] += 1
            logger.error(f"Handler failed for {tx_hash}: {e}")
        except Exception:
            self.stats["errors"] += 1
            logger.exception(f"Handler crashed on {tx_hash}")
        return swap

    async def _fetch(self, tx_hash: str) -> Optional[dict]:
        try:
            return await asyncio.wait_for(
                self._rpc.get_transaction(tx_hash), timeout=self._fetch_timeout
            )
        except asyncio.TimeoutError:
            logger.debug(f"Timed out fetching {tx_hash}")
        except (NetworkError, RpcError) as e:
            logger.debug(f"Could not fetch {tx_hash}: {e}")
        self.stats["errors"] += 1
        return None

    def _record(self, swap: DecodedSwap) -> None:
        if self._metrics_sink is None:
            return
        try:
            self._metrics_sink.record(
                {"event": "swap_decoded", "dex": swap.dex.value, "tx_hash": swap.tx_hash}
            )
        except Exception as e:
            logger.debug(f"Metrics sink rejected event: {e}")
