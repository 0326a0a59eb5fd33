"""
Function ABIs used to build and parse router, token and executor calldata.

Each entry is a name plus its canonical argument types; selectors are
derived with keccak so encode and decode stay symmetric by construction.
"""

from dataclasses import dataclass
from functools import cached_property
from typing import Any, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from ..exceptions import ProtocolDecodeError


@dataclass(frozen=True)
class AbiFunction:
    name: str
    input_types: Tuple[str, ...]
    output_types: Tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @cached_property
    def selector(self) -> bytes:
        return bytes(Web3.keccak(text=self.signature)[:4])

    def encode_call(self, *args: Any) -> bytes:
        return self.selector + encode(list(self.input_types), list(args))

    def decode_call(self, data: bytes) -> Tuple[Any, ...]:
        """
        Decode calldata (selector included) into argument values.

        Raises:
            ProtocolDecodeError: If the selector or argument encoding is wrong
        """
        if data[:4] != self.selector:
            raise ProtocolDecodeError(
                f"Selector mismatch for {self.signature}", selector="0x" + data[:4].hex()
            )
        return decode_values(self.input_types, data[4:], context=self.signature)

    def decode_output(self, data: bytes) -> Tuple[Any, ...]:
        return decode_values(self.output_types, data, context=self.signature)


def decode_values(types: Sequence[str], data: bytes, context: str = "") -> Tuple[Any, ...]:
    """eth_abi decode that reports every malformed-input case as ProtocolDecodeError."""
    try:
        return tuple(decode(list(types), data))
    except (DecodingError, ValueError, TypeError, OverflowError) as e:
        raise ProtocolDecodeError(f"Cannot decode {context or types}: {e}") from e


def selector_table(*functions: AbiFunction) -> dict:
    return {fn.selector: fn for fn in functions}


# ERC-20 / WETH
ERC20_APPROVE = AbiFunction("approve", ("address", "uint256"), ("bool",))

# Executor contract
ORCHESTRATE = AbiFunction(
    "orchestrate",
    (
        "(address,address,uint256)[]",
        "(address,bytes,bool,address,uint256)[]",
    ),
)
PAY_MINER = AbiFunction("payMiner", ("address", "uint256"))

# Uniswap V2 style routers (path-array dialect)
_V2_EXACT_IN = ("uint256", "uint256", "address[]", "address", "uint256")
_V2_ETH_IN = ("uint256", "address[]", "address", "uint256")

SWAP_EXACT_TOKENS_FOR_TOKENS = AbiFunction("swapExactTokensForTokens", _V2_EXACT_IN)
SWAP_TOKENS_FOR_EXACT_TOKENS = AbiFunction("swapTokensForExactTokens", _V2_EXACT_IN)
SWAP_EXACT_ETH_FOR_TOKENS = AbiFunction("swapExactETHForTokens", _V2_ETH_IN)
SWAP_EXACT_TOKENS_FOR_ETH = AbiFunction("swapExactTokensForETH", _V2_EXACT_IN)
SWAP_ETH_FOR_EXACT_TOKENS = AbiFunction("swapETHForExactTokens", _V2_ETH_IN)
SWAP_TOKENS_FOR_EXACT_ETH = AbiFunction("swapTokensForExactETH", _V2_EXACT_IN)
SWAP_EXACT_TOKENS_FOR_TOKENS_FOT = AbiFunction(
    "swapExactTokensForTokensSupportingFeeOnTransferTokens", _V2_EXACT_IN
)
SWAP_EXACT_ETH_FOR_TOKENS_FOT = AbiFunction(
    "swapExactETHForTokensSupportingFeeOnTransferTokens", _V2_ETH_IN
)
SWAP_EXACT_TOKENS_FOR_ETH_FOT = AbiFunction(
    "swapExactTokensForETHSupportingFeeOnTransferTokens", _V2_EXACT_IN
)
GET_AMOUNTS_OUT = AbiFunction("getAmountsOut", ("uint256", "address[]"), ("uint256[]",))

# Uniswap V3 SwapRouter (struct dialect and packed-path dialect)
EXACT_INPUT_SINGLE = AbiFunction(
    "exactInputSingle",
    ("(address,address,uint24,address,uint256,uint256,uint256,uint160)",),
)
EXACT_OUTPUT_SINGLE = AbiFunction(
    "exactOutputSingle",
    ("(address,address,uint24,address,uint256,uint256,uint256,uint160)",),
)
EXACT_INPUT = AbiFunction("exactInput", ("(bytes,address,uint256,uint256,uint256)",))
EXACT_OUTPUT = AbiFunction("exactOutput", ("(bytes,address,uint256,uint256,uint256)",))

# SwapRouter02 drops the deadline field
EXACT_INPUT_SINGLE_02 = AbiFunction(
    "exactInputSingle", ("(address,address,uint24,address,uint256,uint256,uint160)",)
)
EXACT_OUTPUT_SINGLE_02 = AbiFunction(
    "exactOutputSingle", ("(address,address,uint24,address,uint256,uint256,uint160)",)
)
EXACT_INPUT_02 = AbiFunction("exactInput", ("(bytes,address,uint256,uint256)",))
EXACT_OUTPUT_02 = AbiFunction("exactOutput", ("(bytes,address,uint256,uint256)",))

MULTICALL = AbiFunction("multicall", ("bytes[]",))
MULTICALL_WITH_DEADLINE = AbiFunction("multicall", ("uint256", "bytes[]"))

# QuoterV2 and pool state
QUOTE_EXACT_INPUT_SINGLE = AbiFunction(
    "quoteExactInputSingle",
    ("(address,address,uint256,uint24,uint160)",),
    ("uint256", "uint160", "uint32", "uint256"),
)
POOL_SLOT0 = AbiFunction("slot0", (), ("uint160",))
POOL_LIQUIDITY = AbiFunction("liquidity", (), ("uint128",))

# Maverick V2 (flat single-swap dialect)
MAVERICK_SWAP_EXACT_INPUT_SINGLE = AbiFunction(
    "swapExactInputSingle", ("address", "address", "uint256", "uint256", "uint160")
)

# Universal Router (command-stream dialect)
UNIVERSAL_EXECUTE = AbiFunction("execute", ("bytes", "bytes[]", "uint256"))
UNIVERSAL_EXECUTE_NO_DEADLINE = AbiFunction("execute", ("bytes", "bytes[]"))

V3_SWAP_EXACT_IN = 0x00
V3_SWAP_EXACT_OUT = 0x01
V2_SWAP_EXACT_IN = 0x08
V2_SWAP_EXACT_OUT = 0x09
COMMAND_TYPE_MASK = 0x3F

UNIVERSAL_V3_INPUT = ("address", "uint256", "uint256", "bytes", "bool")
UNIVERSAL_V2_INPUT = ("address", "uint256", "uint256", "address[]", "bool")

# Universal Router recipient placeholders
UNIVERSAL_MSG_SENDER = "0x0000000000000000000000000000000000000001"

# Curve pools (index-exchange dialect)
CURVE_EXCHANGE = AbiFunction("exchange", ("int128", "int128", "uint256", "uint256"))
CURVE_GET_DY = AbiFunction("get_dy", ("int128", "int128", "uint256"), ("uint256",))
