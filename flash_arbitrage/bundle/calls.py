"""Builders for the non-swap calls of a bundle."""

from ..dex.abi import ERC20_APPROVE, PAY_MINER
from ..types import Call
from ..utils import ZERO_ADDRESS, same_address, to_checksum

MAX_UINT256 = 2**256 - 1


def approve_call(token: str, spender: str, amount: int = MAX_UINT256) -> Call:
    return Call(
        target=to_checksum(token),
        data=ERC20_APPROVE.encode_call(to_checksum(spender), amount),
    )


def pay_miner_call(executor: str, token: str, amount: int) -> Call:
    """Executor ``payMiner(token, amount)``; native tips carry the value."""
    value = amount if same_address(token, ZERO_ADDRESS) else 0
    return Call(
        target=to_checksum(executor),
        data=PAY_MINER.encode_call(to_checksum(token), amount),
        value=value,
    )

