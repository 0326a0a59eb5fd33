"""
Pending transaction decoder.

Classifies the destination router through the registry, then parses the
calldata with the dialect of that router's family. Anything that is not a
recognisable swap yields None; malformed calldata never raises out of
``decode``.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..dex import abi
from ..dex.abi import decode_values, selector_table
from ..dex.adapters.v3 import decode_v3_path
from ..dex.registry import RouterRegistry
from ..exceptions import ProtocolDecodeError
from ..types import DecodedSwap, DexFamily, DexKind, PendingTransaction
from ..utils import same_address, to_checksum

logger = logging.getLogger(__name__)

_V2_FUNCTIONS = selector_table(
    abi.SWAP_EXACT_TOKENS_FOR_TOKENS,
    abi.SWAP_TOKENS_FOR_EXACT_TOKENS,
    abi.SWAP_EXACT_ETH_FOR_TOKENS,
    abi.SWAP_EXACT_TOKENS_FOR_ETH,
    abi.SWAP_ETH_FOR_EXACT_TOKENS,
    abi.SWAP_TOKENS_FOR_EXACT_ETH,
    abi.SWAP_EXACT_TOKENS_FOR_TOKENS_FOT,
    abi.SWAP_EXACT_ETH_FOR_TOKENS_FOT,
    abi.SWAP_EXACT_TOKENS_FOR_ETH_FOT,
)

_V3_FUNCTIONS = selector_table(
    abi.EXACT_INPUT_SINGLE,
    abi.EXACT_OUTPUT_SINGLE,
    abi.EXACT_INPUT,
    abi.EXACT_OUTPUT,
    abi.EXACT_INPUT_SINGLE_02,
    abi.EXACT_OUTPUT_SINGLE_02,
    abi.EXACT_INPUT_02,
    abi.EXACT_OUTPUT_02,
)

_MULTICALLS = selector_table(abi.MULTICALL, abi.MULTICALL_WITH_DEADLINE)

_UNIVERSAL_FUNCTIONS = selector_table(abi.UNIVERSAL_EXECUTE, abi.UNIVERSAL_EXECUTE_NO_DEADLINE)

# name -> (amount_in is exact, native in, native out)
_V2_SHAPES: Dict[str, Tuple[bool, bool, bool]] = {
    "swapExactTokensForTokens": (True, False, False),
    "swapExactTokensForTokensSupportingFeeOnTransferTokens": (True, False, False),
    "swapTokensForExactTokens": (False, False, False),
    "swapExactETHForTokens": (True, True, False),
    "swapExactETHForTokensSupportingFeeOnTransferTokens": (True, True, False),
    "swapETHForExactTokens": (False, True, False),
    "swapExactTokensForETH": (True, False, True),
    "swapExactTokensForETHSupportingFeeOnTransferTokens": (True, False, True),
    "swapTokensForExactETH": (False, False, True),
}

MAX_MULTICALL_DEPTH = 2


class MempoolDecoder:
    def __init__(self, registry: RouterRegistry, wrapped_native: str):
        self._registry = registry
        self.wrapped_native = to_checksum(wrapped_native)
        self._dialects: Dict[DexFamily, Callable[..., Optional[DecodedSwap]]] = {
            DexFamily.V2: self._decode_path_array,
            DexFamily.V3: self._decode_v3,
            DexFamily.MAVERICK: self._decode_flat_single,
            DexFamily.UNIVERSAL: self._decode_command_stream,
            DexFamily.CURVE: self._decode_index_exchange,
        }

    def decode(self, tx: PendingTransaction) -> Optional[DecodedSwap]:
        """Decode ``tx`` into a swap intent, or None if it is not one."""
        kind = self._registry.classify(tx.to)
        if kind is None or len(tx.input) < 4:
            return None
        try:
            return self._dialects[kind.family](kind, tx, tx.input, 0)
        except ProtocolDecodeError as e:
            logger.debug(f"Undecodable {kind.value} calldata in {tx.hash}: {e}")
            return None

    # Dialects

    def _decode_path_array(
        self, kind: DexKind, tx: PendingTransaction, data: bytes, depth: int
    ) -> Optional[DecodedSwap]:
        fn = _V2_FUNCTIONS.get(data[:4])
        if fn is None:
            return None
        exact_in, native_in, native_out = _V2_SHAPES[fn.name]
        args = fn.decode_call(data)

        if native_in:
            # (amountOutMin | amountOut, path, to, deadline); input is msg.value
            limit, path, recipient, deadline = args
            amount_in, amount_out_min = tx.value, limit
        else:
            first, second, path, recipient, deadline = args
            # exact-output functions put the output amount first
            amount_in, amount_out_min = (first, second) if exact_in else (second, first)

        path = list(path)
        if len(path) < 2:
            raise ProtocolDecodeError(f"{fn.name} path too short: {len(path)}")
        if native_in:
            path[0] = self.wrapped_native
        if native_out:
            path[-1] = self.wrapped_native

        return self._swap(
            kind, tx, path, amount_in, amount_out_min, recipient,
            deadline=deadline, exact_output=not exact_in,
        )

    def _decode_v3(
        self, kind: DexKind, tx: PendingTransaction, data: bytes, depth: int
    ) -> Optional[DecodedSwap]:
        selector = data[:4]
        if selector in _MULTICALLS:
            return self._decode_multicall(kind, tx, data, depth, self._decode_v3)

        fn = _V3_FUNCTIONS.get(selector)
        if fn is None:
            return None
        (params,) = fn.decode_call(data)
        has_deadline = fn in (
            abi.EXACT_INPUT_SINGLE, abi.EXACT_OUTPUT_SINGLE, abi.EXACT_INPUT, abi.EXACT_OUTPUT
        )
        exact_output = fn.name.startswith("exactOutput")

        if fn.name in ("exactInputSingle", "exactOutputSingle"):
            token_in, token_out, fee, recipient = params[:4]
            rest = params[4:]
            deadline = rest[0] if has_deadline else None
            amount_a, amount_b = (rest[1], rest[2]) if has_deadline else (rest[0], rest[1])
            path, fees = [token_in, token_out], [fee]
        else:
            packed, recipient = params[0], params[1]
            deadline = params[2] if has_deadline else None
            amount_a, amount_b = params[-2], params[-1]
            path, fees = decode_v3_path(packed)
            if exact_output:
                # exactOutput paths are encoded output-first
                path, fees = path[::-1], fees[::-1]

        amount_in, amount_out_min = (amount_b, amount_a) if exact_output else (amount_a, amount_b)
        amount_in = self._native_amount(tx, path[0], amount_in, exact_output)
        return self._swap(
            kind, tx, path, amount_in, amount_out_min, recipient,
            fees=fees, deadline=deadline, exact_output=exact_output,
        )

    def _decode_flat_single(
        self, kind: DexKind, tx: PendingTransaction, data: bytes, depth: int
    ) -> Optional[DecodedSwap]:
        fn = abi.MAVERICK_SWAP_EXACT_INPUT_SINGLE
        if data[:4] != fn.selector:
            return None
        token_in, token_out, amount_in, amount_out_min, _limit = fn.decode_call(data)
        amount_in = self._native_amount(tx, token_in, amount_in, False)
        # the router pays msg.sender
        return self._swap(kind, tx, [token_in, token_out], amount_in, amount_out_min, tx.sender)

    def _decode_command_stream(
        self, kind: DexKind, tx: PendingTransaction, data: bytes, depth: int
    ) -> Optional[DecodedSwap]:
        fn = _UNIVERSAL_FUNCTIONS.get(data[:4])
        if fn is None:
            return None
        args = fn.decode_call(data)
        commands, inputs = args[0], args[1]
        deadline = args[2] if len(args) > 2 else None
        if len(inputs) < len(commands):
            raise ProtocolDecodeError(
                f"{len(commands)} commands but only {len(inputs)} inputs"
            )

        for index, command in enumerate(commands):
            command_type = command & abi.COMMAND_TYPE_MASK
            if command_type in (abi.V3_SWAP_EXACT_IN, abi.V3_SWAP_EXACT_OUT):
                recipient, amount_a, amount_b, packed, _payer = decode_values(
                    abi.UNIVERSAL_V3_INPUT, inputs[index], context="V3 swap input"
                )
                path, fees = decode_v3_path(packed)
                exact_output = command_type == abi.V3_SWAP_EXACT_OUT
                if exact_output:
                    path, fees = path[::-1], fees[::-1]
            elif command_type in (abi.V2_SWAP_EXACT_IN, abi.V2_SWAP_EXACT_OUT):
                recipient, amount_a, amount_b, path, _payer = decode_values(
                    abi.UNIVERSAL_V2_INPUT, inputs[index], context="V2 swap input"
                )
                path, fees = list(path), []
                if len(path) < 2:
                    raise ProtocolDecodeError(f"V2 command path too short: {len(path)}")
                exact_output = command_type == abi.V2_SWAP_EXACT_OUT
            else:
                continue

            if same_address(recipient, abi.UNIVERSAL_MSG_SENDER):
                recipient = tx.sender
            amount_in, amount_out_min = (
                (amount_b, amount_a) if exact_output else (amount_a, amount_b)
            )
            amount_in = self._native_amount(tx, path[0], amount_in, exact_output)
            return self._swap(
                kind, tx, path, amount_in, amount_out_min, recipient,
                fees=fees, deadline=deadline, exact_output=exact_output,
            )
        return None

    def _decode_index_exchange(
        self, kind: DexKind, tx: PendingTransaction, data: bytes, depth: int
    ) -> Optional[DecodedSwap]:
        fn = abi.CURVE_EXCHANGE
        if data[:4] != fn.selector:
            return None
        i, j, dx, min_dy = fn.decode_call(data)
        coins = self._registry.coins_for(tx.to)
        if not coins or not (0 <= i < len(coins)) or not (0 <= j < len(coins)):
            raise ProtocolDecodeError(f"No coin table entry for indices {i}, {j} on {tx.to}")
        return self._swap(kind, tx, [coins[i], coins[j]], dx, min_dy, tx.sender)

    # Helpers

    def _decode_multicall(
        self,
        kind: DexKind,
        tx: PendingTransaction,
        data: bytes,
        depth: int,
        inner: Callable[..., Optional[DecodedSwap]],
    ) -> Optional[DecodedSwap]:
        if depth >= MAX_MULTICALL_DEPTH:
            return None
        fn = _MULTICALLS[data[:4]]
        args = fn.decode_call(data)
        for call in args[-1]:
            if len(call) < 4:
                continue
            try:
                decoded = inner(kind, tx, call, depth + 1)
            except ProtocolDecodeError:
                continue
            if decoded is not None:
                return decoded
        return None

    def _native_amount(
        self, tx: PendingTransaction, token_in: str, amount_in: int, exact_output: bool
    ) -> int:
        """Native value sent alongside a wrapped-native input is the real input."""
        if tx.value > 0 and not exact_output and same_address(token_in, self.wrapped_native):
            return tx.value
        return amount_in

    def _swap(
        self,
        kind: DexKind,
        tx: PendingTransaction,
        path: Sequence[Any],
        amount_in: int,
        amount_out_min: int,
        recipient: Optional[str],
        *,
        fees: Sequence[int] = (),
        deadline: Optional[int] = None,
        exact_output: bool = False,
    ) -> DecodedSwap:
        try:
            tokens: List[str] = [to_checksum(t) for t in path]
            recipient = to_checksum(recipient) if recipient else None
        except ValueError as e:
            raise ProtocolDecodeError(f"Bad address in swap: {e}") from e
        return DecodedSwap(
            dex=kind,
            token_in=tokens[0],
            token_out=tokens[-1],
            amount_in=amount_in,
            amount_out_min=amount_out_min,
            recipient=recipient,
            path=tuple(tokens),
            fees=tuple(fees),
            deadline=deadline,
            tx_hash=tx.hash,
            exact_output=exact_output,
            router=to_checksum(tx.to),
        )
