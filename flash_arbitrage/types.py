"""
Core data types shared by the quoting, routing, mempool, bundle and
execution layers.

All token amounts are raw integers in the token's smallest unit. Addresses
are EIP-55 checksummed strings.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .dex.abi import ORCHESTRATE
from .utils import ZERO_ADDRESS, hex_to_bytes, hex_to_int, same_address, to_checksum


class DexFamily(Enum):
    """Calldata dialect shared by a group of DEX kinds."""

    V2 = "v2"
    V3 = "v3"
    MAVERICK = "maverick"
    UNIVERSAL = "universal"
    CURVE = "curve"


class DexKind(Enum):
    """Closed set of supported DEX kinds."""

    UNISWAP_V2 = "uniswapv2"
    SUSHISWAP_V2 = "sushiswapv2"
    CAMELOT = "camelot"
    UNISWAP_V3 = "uniswapv3"
    SUSHISWAP_V3 = "sushiswapv3"
    PANCAKESWAP_V3 = "pancakeswapv3"
    RAMSES_V2 = "ramsesv2"
    MAVERICK_V2 = "maverickv2"
    UNIVERSAL_ROUTER = "universalrouter"
    CURVE = "curve"

    @property
    def family(self) -> DexFamily:
        return _FAMILY_BY_KIND[self]

    @classmethod
    def from_name(cls, name: str) -> "DexKind":
        """Parse a config name such as ``uniswap_v3`` or ``Camelot``."""
        normalised = name.strip().lower().replace("_", "").replace("-", "")
        for kind in cls:
            if kind.value == normalised:
                return kind
        raise ValueError(f"Unknown DEX kind: {name}")


_FAMILY_BY_KIND = {
    DexKind.UNISWAP_V2: DexFamily.V2,
    DexKind.SUSHISWAP_V2: DexFamily.V2,
    DexKind.CAMELOT: DexFamily.V2,
    DexKind.UNISWAP_V3: DexFamily.V3,
    DexKind.SUSHISWAP_V3: DexFamily.V3,
    DexKind.PANCAKESWAP_V3: DexFamily.V3,
    # Ramses V2 is a concentrated-liquidity fork with the V3 router ABI
    DexKind.RAMSES_V2: DexFamily.V3,
    DexKind.MAVERICK_V2: DexFamily.MAVERICK,
    DexKind.UNIVERSAL_ROUTER: DexFamily.UNIVERSAL,
    DexKind.CURVE: DexFamily.CURVE,
}


@dataclass(frozen=True)
class TokenInfo:
    """An ERC-20 token the engine may route through."""

    address: str
    symbol: str
    decimals: int = 18

    def __post_init__(self):
        object.__setattr__(self, "address", to_checksum(self.address))


@dataclass(frozen=True)
class Quote:
    """
    Output of a single DEX for one (token_in, token_out, amount_in) query.

    Attributes:
        dex: Name of the adapter that produced the quote
        amount_in: Input amount the quote was computed for
        amount_out: Expected output amount (0 means no quote)
        estimated_gas: Gas the swap is expected to use
        kind: DEX kind used to pick the swap encoder
        router: Address the swap call would target
        fee: Pool fee tier (V3 style, hundredths of a bip) or 0
    """

    dex: str
    amount_in: int
    amount_out: int
    estimated_gas: int = 0
    kind: Optional[DexKind] = None
    router: Optional[str] = None
    fee: int = 0


@dataclass(frozen=True)
class Hop:
    """One swap step of a route."""

    dex: DexKind
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    router: Optional[str] = None
    fee: int = 0
    venue: str = ""

    @classmethod
    def from_quote(cls, quote: Quote, token_in: str, token_out: str) -> "Hop":
        if quote.kind is None:
            raise ValueError(f"Quote from {quote.dex} carries no DEX kind")
        return cls(
            dex=quote.kind,
            token_in=token_in,
            token_out=token_out,
            amount_in=quote.amount_in,
            amount_out=quote.amount_out,
            router=quote.router,
            fee=quote.fee,
            venue=quote.dex,
        )


@dataclass(frozen=True)
class Route:
    """A closed loop of hops starting and ending at ``base_token``."""

    base_token: TokenInfo
    hops: Tuple[Hop, ...]
    gas_cost: int
    net_profit: int

    @property
    def amount_in(self) -> int:
        return self.hops[0].amount_in

    @property
    def amount_out(self) -> int:
        return self.hops[-1].amount_out

    @property
    def gross_profit(self) -> int:
        return self.amount_out - self.amount_in

    @property
    def path(self) -> Tuple[str, ...]:
        return (self.hops[0].token_in,) + tuple(h.token_out for h in self.hops)

    def is_closed(self) -> bool:
        if not self.hops:
            return False
        base = self.base_token.address
        chained = all(
            same_address(a.token_out, b.token_in) and a.amount_out == b.amount_in
            for a, b in zip(self.hops, self.hops[1:])
        )
        return (
            chained
            and same_address(self.hops[0].token_in, base)
            and same_address(self.hops[-1].token_out, base)
        )

    def describe(self) -> str:
        return " -> ".join(self.path)


@dataclass(frozen=True)
class Call:
    """One low-level call executed by the executor contract."""

    target: str
    data: bytes
    value: int = 0
    requires_approval: bool = False
    approval_token: str = ZERO_ADDRESS
    approval_amount: int = 0

    def as_abi_tuple(self) -> Tuple[str, bytes, bool, str, int]:
        return (
            self.target,
            self.data,
            self.requires_approval,
            self.approval_token,
            self.approval_amount,
        )


@dataclass(frozen=True)
class FlashloanRequest:
    provider: str
    token: str
    amount: int

    def as_abi_tuple(self) -> Tuple[str, str, int]:
        return (self.provider, self.token, self.amount)


@dataclass(frozen=True)
class Bundle:
    """Atomic unit of execution: one flash loan wrapping an ordered call list."""

    flashloan: FlashloanRequest
    calls: Tuple[Call, ...]

    @property
    def total_value(self) -> int:
        return sum(call.value for call in self.calls)

    def to_orchestrate_calldata(self) -> bytes:
        """Calldata for the executor's ``orchestrate(FlashLoan[], Call[])``."""
        return ORCHESTRATE.encode_call(
            [self.flashloan.as_abi_tuple()],
            [call.as_abi_tuple() for call in self.calls],
        )


@dataclass(frozen=True)
class DecodedSwap:
    """Normalised swap intent extracted from a pending transaction."""

    dex: DexKind
    token_in: str
    token_out: str
    amount_in: int
    amount_out_min: int
    recipient: Optional[str]
    path: Tuple[str, ...]
    fees: Tuple[int, ...] = ()
    deadline: Optional[int] = None
    tx_hash: Optional[str] = None
    exact_output: bool = False
    router: Optional[str] = None


@dataclass(frozen=True)
class PendingTransaction:
    """Raw pending transaction as returned by ``eth_getTransactionByHash``."""

    hash: str
    sender: str
    to: Optional[str]
    input: bytes
    value: int = 0
    nonce: Optional[int] = None
    gas_price: Optional[int] = None

    @classmethod
    def from_rpc(cls, raw: Dict[str, Any]) -> "PendingTransaction":
        """
        Build from a JSON-RPC transaction object.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        try:
            gas_price = raw.get("gasPrice") or raw.get("maxFeePerGas")
            return cls(
                hash=raw["hash"],
                sender=raw.get("from") or ZERO_ADDRESS,
                to=raw.get("to"),
                input=hex_to_bytes(raw.get("input") or raw.get("data")),
                value=hex_to_int(raw.get("value")),
                nonce=hex_to_int(raw["nonce"]) if raw.get("nonce") is not None else None,
                gas_price=hex_to_int(gas_price) if gas_price is not None else None,
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed transaction object: {e}") from e


# Mutable state records owned by single components


@dataclass
class CircuitBreakerState:
    consecutive_failures: int = 0
    is_open: bool = False
    last_failure_ts: float = 0.0


@dataclass
class RateLimiterWindow:
    count: int = 0
    window_reset_ts: float = 0.0


@dataclass
class ConnectionState:
    current_endpoint_index: int = 0
    reconnect_attempts: int = 0
    is_connected: bool = False
