"""Adapter protocols shared by every DEX quoting backend."""

from typing import Optional, Protocol, runtime_checkable

from ...types import DexKind, Quote


@runtime_checkable
class ContractReader(Protocol):
    """The read-only slice of the RPC client adapters need."""

    async def eth_call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        ...


@runtime_checkable
class DexAdapter(Protocol):
    """Quotes one DEX for a (token_in, token_out, amount_in) triple."""

    name: str
    kind: DexKind
    router: Optional[str]
    fee: int

    async def quote(self, token_in: str, token_out: str, amount_in: int) -> Quote:
        """
        Return the expected output for ``amount_in``.

        Implementations may raise on reverts or transport errors; the
        aggregator treats any exception as "no quote".
        """
        ...
