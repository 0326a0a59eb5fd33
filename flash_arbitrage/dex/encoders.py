"""
Swap calldata encoders, one per calldata dialect.

Every encoder produces a ``Call`` that spends ``hop.token_in`` from the
executor contract, so each is flagged as requiring an approval of that
token to the call target. The decoder in ``flash_arbitrage.mempool``
parses exactly the shapes written here.
"""

from typing import Dict, Optional, Protocol

from eth_abi import encode

from ..exceptions import ConstructionError
from ..types import Call, DexFamily, DexKind, Hop
from ..utils import to_checksum
from . import abi
from .adapters.v3 import encode_v3_path
from .registry import RouterRegistry


class SwapEncoder(Protocol):
    def encode(self, hop: Hop, recipient: str, amount_out_min: int, deadline: int) -> Call:
        ...


def _swap_call(hop: Hop, data: bytes) -> Call:
    return Call(
        target=to_checksum(hop.router),
        data=data,
        requires_approval=True,
        approval_token=to_checksum(hop.token_in),
        approval_amount=hop.amount_in,
    )


def _path(hop: Hop):
    return [to_checksum(hop.token_in), to_checksum(hop.token_out)]


class V2PathEncoder:
    """``swapExactTokensForTokens(amountIn, amountOutMin, path, to, deadline)``"""

    def encode(self, hop: Hop, recipient: str, amount_out_min: int, deadline: int) -> Call:
        data = abi.SWAP_EXACT_TOKENS_FOR_TOKENS.encode_call(
            hop.amount_in, amount_out_min, _path(hop), recipient, deadline
        )
        return _swap_call(hop, data)


class V3SingleEncoder:
    """``exactInputSingle`` with the original SwapRouter struct (deadline included)."""

    def encode(self, hop: Hop, recipient: str, amount_out_min: int, deadline: int) -> Call:
        tokens = _path(hop)
        params = (tokens[0], tokens[1], hop.fee, recipient, deadline, hop.amount_in, amount_out_min, 0)
        return _swap_call(hop, abi.EXACT_INPUT_SINGLE.encode_call(params))


class MaverickEncoder:
    """``swapExactInputSingle(tokenIn, tokenOut, amountIn, amountOutMin, sqrtPriceLimit)``

    The router pays the caller, so ``recipient`` is implied.
    """

    def encode(self, hop: Hop, recipient: str, amount_out_min: int, deadline: int) -> Call:
        tokens = _path(hop)
        data = abi.MAVERICK_SWAP_EXACT_INPUT_SINGLE.encode_call(
            tokens[0], tokens[1], hop.amount_in, amount_out_min, 0
        )
        return _swap_call(hop, data)


class UniversalRouterEncoder:
    """``execute(commands, inputs, deadline)`` with a single V3_SWAP_EXACT_IN command."""

    def encode(self, hop: Hop, recipient: str, amount_out_min: int, deadline: int) -> Call:
        path = encode_v3_path(_path(hop), [hop.fee])
        swap_input = encode(
            list(abi.UNIVERSAL_V3_INPUT),
            [recipient, hop.amount_in, amount_out_min, path, True],
        )
        commands = bytes([abi.V3_SWAP_EXACT_IN])
        data = abi.UNIVERSAL_EXECUTE.encode_call(commands, [swap_input], deadline)
        return _swap_call(hop, data)


class CurveEncoder:
    """``exchange(i, j, dx, min_dy)`` with indices from the registry coin table."""

    def __init__(self, registry: RouterRegistry):
        self._registry = registry

    def encode(self, hop: Hop, recipient: str, amount_out_min: int, deadline: int) -> Call:
        i = self._registry.coin_index(hop.router, hop.token_in)
        j = self._registry.coin_index(hop.router, hop.token_out)
        if i is None or j is None:
            raise ConstructionError(
                f"Pool {hop.router} has no coin index for {hop.token_in} or {hop.token_out}",
                dex=hop.dex.value,
            )
        return _swap_call(hop, abi.CURVE_EXCHANGE.encode_call(i, j, hop.amount_in, amount_out_min))


class SwapEncoderRegistry:
    """Explicit ``DexKind`` to encoder table; unknown kinds fail loudly."""

    def __init__(self):
        self._encoders: Dict[DexKind, SwapEncoder] = {}

    def register(self, kind: DexKind, encoder: SwapEncoder) -> None:
        self._encoders[kind] = encoder

    def encoder_for(self, kind: DexKind) -> SwapEncoder:
        try:
            return self._encoders[kind]
        except KeyError:
            raise ConstructionError(f"No swap encoder registered for {kind.value}", dex=kind.value)

    def encode(self, hop: Hop, recipient: str, amount_out_min: int, deadline: int) -> Call:
        if not hop.router:
            raise ConstructionError(
                f"Hop {hop.token_in} -> {hop.token_out} has no router", dex=hop.dex.value
            )
        encoder = self.encoder_for(hop.dex)
        return encoder.encode(hop, to_checksum(recipient), amount_out_min, deadline)

    def __contains__(self, kind: DexKind) -> bool:
        return kind in self._encoders


def default_encoders(registry: Optional[RouterRegistry] = None) -> SwapEncoderRegistry:
    """Register an encoder for every ``DexKind`` by its calldata family."""
    by_family: Dict[DexFamily, SwapEncoder] = {
        DexFamily.V2: V2PathEncoder(),
        DexFamily.V3: V3SingleEncoder(),
        DexFamily.MAVERICK: MaverickEncoder(),
        DexFamily.UNIVERSAL: UniversalRouterEncoder(),
        DexFamily.CURVE: CurveEncoder(registry or RouterRegistry()),
    }
    encoders = SwapEncoderRegistry()
    for kind in DexKind:
        encoders.register(kind, by_family[kind.family])
    return encoders
