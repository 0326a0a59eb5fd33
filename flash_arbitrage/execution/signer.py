"""Transaction construction and signing with eth_account."""

import logging
from typing import Any, Dict, Optional, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount

from ..exceptions import ConfigurationError
from ..utils import to_checksum

logger = logging.getLogger(__name__)


class TransactionSigner:
    """Holds the searcher key and signs EIP-1559 executor transactions."""

    def __init__(
        self, private_key: Optional[Union[str, bytes]], chain_id: int, ephemeral: bool = False
    ):
        self.chain_id = chain_id
        self.ephemeral = ephemeral
        self._account: Optional[LocalAccount] = (
            Account.from_key(private_key) if private_key else None
        )

    @classmethod
    def throwaway(cls, chain_id: int) -> "TransactionSigner":
        """Random key for dry runs: signs simulation payloads, never funded."""
        account = Account.create()
        logger.info(f"Using throwaway signer {account.address} for dry-run simulation")
        return cls(account.key, chain_id, ephemeral=True)

    @property
    def address(self) -> str:
        if self._account is None:
            raise ConfigurationError("No private key loaded")
        return self._account.address

    def build_transaction(
        self,
        *,
        to: str,
        data: bytes,
        nonce: int,
        gas: int,
        max_fee_per_gas: int,
        max_priority_fee_per_gas: int,
        value: int = 0,
    ) -> Dict[str, Any]:
        return {
            "type": 2,
            "chainId": self.chain_id,
            "nonce": nonce,
            "to": to_checksum(to),
            "value": value,
            "data": data,
            "gas": gas,
            "maxFeePerGas": max_fee_per_gas,
            "maxPriorityFeePerGas": max_priority_fee_per_gas,
        }

    def sign(self, tx: Dict[str, Any]) -> bytes:
        """
        Raises:
            ConfigurationError: If no key is loaded
        """
        if self._account is None:
            raise ConfigurationError("No private key loaded, cannot sign transaction")
        signed = self._account.sign_transaction(tx)
        return bytes(signed.raw_transaction)
