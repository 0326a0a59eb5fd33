"""Curve style adapter: ``get_dy(i, j, dx)`` against one pool."""

from typing import Optional, Sequence

from ...types import DexKind, Quote
from ...utils import to_checksum
from ..abi import CURVE_GET_DY
from .base import ContractReader

DEFAULT_CURVE_SWAP_GAS = 180_000


class CurveAdapter:
    def __init__(
        self,
        name: str,
        pool: str,
        coins: Sequence[str],
        reader: ContractReader,
        gas_estimate: Optional[int] = None,
    ):
        self.name = name
        self.kind = DexKind.CURVE
        self.router = to_checksum(pool)
        self.fee = 0
        self._coins = [c.lower() for c in coins]
        self._reader = reader
        self._gas_estimate = gas_estimate or DEFAULT_CURVE_SWAP_GAS

    def _index(self, token: str) -> Optional[int]:
        try:
            return self._coins.index(token.lower())
        except ValueError:
            return None

    async def quote(self, token_in: str, token_out: str, amount_in: int) -> Quote:
        i, j = self._index(token_in), self._index(token_out)
        amount_out = 0
        if i is not None and j is not None:
            raw = await self._reader.eth_call(self.router, CURVE_GET_DY.encode_call(i, j, amount_in))
            (amount_out,) = CURVE_GET_DY.decode_output(raw)
        return Quote(
            dex=self.name,
            amount_in=amount_in,
            amount_out=amount_out,
            estimated_gas=self._gas_estimate,
            kind=self.kind,
            router=self.router,
        )
