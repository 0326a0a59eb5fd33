"""
Concurrent best-quote selection across DEX adapters.

Adapters are queried in parallel under a shared semaphore. Any adapter
failure, revert or timeout counts as "no quote" and never reaches the
caller.
"""

import asyncio
import logging
import time
from typing import List, Optional, Sequence

from ..dex.adapters.base import DexAdapter
from ..types import Quote
from ..utils import same_address

logger = logging.getLogger(__name__)


class QuoteAggregator:
    def __init__(
        self,
        adapters: Sequence[DexAdapter] = (),
        *,
        max_concurrency: int = 8,
        quote_timeout: float = 2.0,
        metrics=None,
    ):
        self._adapters: List[DexAdapter] = list(adapters)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._quote_timeout = quote_timeout
        self._metrics = metrics

    @property
    def adapters(self) -> List[DexAdapter]:
        return list(self._adapters)

    def register(self, adapter: DexAdapter) -> None:
        self._adapters.append(adapter)

    async def best_quote(
        self, token_in: str, token_out: str, amount_in: int
    ) -> Optional[Quote]:
        """
        Return the quote with the strictly greatest ``amount_out``.

        Ties keep the adapter registered first. Zero outputs are never
        selected. Returns None when nothing quotes, when ``amount_in <= 0``
        or when both tokens are the same.
        """
        if amount_in <= 0 or same_address(token_in, token_out) or not self._adapters:
            return None

        quotes = await asyncio.gather(
            *(self._safe_quote(a, token_in, token_out, amount_in) for a in self._adapters)
        )

        best: Optional[Quote] = None
        for quote in quotes:
            if quote is None or quote.amount_out <= 0:
                continue
            if best is None or quote.amount_out > best.amount_out:
                best = quote
        return best

    async def _safe_quote(
        self, adapter: DexAdapter, token_in: str, token_out: str, amount_in: int
    ) -> Optional[Quote]:
        async with self._semaphore:
            started = time.perf_counter()
            try:
                return await asyncio.wait_for(
                    adapter.quote(token_in, token_out, amount_in),
                    timeout=self._quote_timeout,
                )
            except asyncio.TimeoutError:
                logger.debug(f"{adapter.name} quote timed out for {token_in}->{token_out}")
                return None
            except Exception as e:
                logger.debug(f"{adapter.name} quote failed for {token_in}->{token_out}: {e}")
                return None
            finally:
                if self._metrics is not None:
                    self._metrics.observe_quote_latency(
                        adapter.name, time.perf_counter() - started
                    )
