"""
Router address registry.

Maps lower-cased router (or pool) addresses to their ``DexKind`` and keeps
the coin index table for index-exchange pools. Built once from config and
shared read-only by the decoder, encoders and adapters.
"""

import logging
from typing import Dict, Iterable, List, Optional

from ..types import DexKind
from ..utils import to_checksum

logger = logging.getLogger(__name__)

# Well-known Arbitrum One routers
ARBITRUM_ROUTERS = {
    "0xe592427a0aece92de3edee1f18e0157c05861564": DexKind.UNISWAP_V3,
    "0x68b3465833fb72a70ecdf485e0e4c7bd8665fc45": DexKind.UNISWAP_V3,
    "0x4752ba5dbc23f44d87826276bf6fd6b1c372ad24": DexKind.UNISWAP_V2,
    "0x1b02da8cb0d097eb8d57a175b88c7d8b47997506": DexKind.SUSHISWAP_V2,
    "0x8a21f6768c1f8075791d08546daec9e7c4a86cdd": DexKind.SUSHISWAP_V3,
    "0xc873fecbd354f5a56e00e710b90ef4201db2448d": DexKind.CAMELOT,
    "0x13f4ea83d0bd40e75c8222255bc855a974568dd4": DexKind.PANCAKESWAP_V3,
    "0xaa273216cc9201a1e4285ca623f584badc736944": DexKind.RAMSES_V2,
    "0x5c3b380e5aeec389d1014da3eb372fa2c9e0fc76": DexKind.MAVERICK_V2,
    "0x5e325eda8064b456f4781070c0738d849c824258": DexKind.UNIVERSAL_ROUTER,
}

ARBITRUM_WETH = to_checksum("0x82af49447d8a07e3bd95bd0d56f35241523fbab1")


class RouterRegistry:
    def __init__(self):
        self._kinds: Dict[str, DexKind] = {}
        self._first_router: Dict[DexKind, str] = {}
        self._coins: Dict[str, List[str]] = {}

    @classmethod
    def with_defaults(cls) -> "RouterRegistry":
        registry = cls()
        for address, kind in ARBITRUM_ROUTERS.items():
            registry.register(address, kind)
        return registry

    def register(
        self, address: str, kind: DexKind, coins: Optional[Iterable[str]] = None
    ) -> None:
        """Register a router, or a Curve pool together with its coin order."""
        address = to_checksum(address)
        key = address.lower()
        previous = self._kinds.get(key)
        if previous is not None and previous is not kind:
            logger.warning(f"Router {address} re-registered: {previous.value} -> {kind.value}")
        self._kinds[key] = kind
        self._first_router.setdefault(kind, address)
        if coins is not None:
            self._coins[key] = [to_checksum(c) for c in coins]

    def classify(self, address: Optional[str]) -> Optional[DexKind]:
        if not address:
            return None
        return self._kinds.get(address.lower())

    def router_for(self, kind: DexKind) -> Optional[str]:
        return self._first_router.get(kind)

    def coins_for(self, pool: str) -> Optional[List[str]]:
        return self._coins.get(pool.lower())

    def coin_index(self, pool: str, token: str) -> Optional[int]:
        coins = self.coins_for(pool)
        if not coins:
            return None
        lowered = token.lower()
        for index, coin in enumerate(coins):
            if coin.lower() == lowered:
                return index
        return None

    def __len__(self) -> int:
        return len(self._kinds)

    def __contains__(self, address: str) -> bool:
        return self.classify(address) is not None
