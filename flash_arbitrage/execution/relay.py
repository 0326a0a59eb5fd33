"""
Private relay submission via ``eth_sendBundle``.

The bundle goes to every configured relay concurrently. A relay answering
with a result counts as acceptance; inclusion is not tracked here.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import aiohttp
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from ..exceptions import ConfigurationError
from ..utils import to_hex

logger = logging.getLogger(__name__)


@dataclass
class RelayResponse:
    relay: str
    accepted: bool
    bundle_hash: Optional[str] = None
    error: Optional[str] = None
    transport_error: bool = False


class RelayClient:
    def __init__(
        self,
        urls: Sequence[str],
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 5.0,
        auth_key: Optional[str] = None,
    ):
        """
        Args:
            urls: Relay endpoints
            session: Shared aiohttp session
            timeout: Per-relay request deadline in seconds
            auth_key: Private key used to sign the ``X-Flashbots-Signature``
                header; relays that do not require it ignore the header
        """
        if not urls:
            raise ConfigurationError("At least one relay URL is required")
        self.urls = list(urls)
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout
        self._auth_account = Account.from_key(auth_key) if auth_key else None

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def build_request(
        self,
        signed_transactions: Sequence[bytes],
        target_block: int,
        min_timestamp: int = 0,
        max_timestamp: int = 0,
    ) -> str:
        return json.dumps(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "eth_sendBundle",
                "params": [
                    {
                        "txs": [to_hex(tx) for tx in signed_transactions],
                        "blockNumber": hex(target_block),
                        "minTimestamp": min_timestamp,
                        "maxTimestamp": max_timestamp,
                    }
                ],
            }
        )

    def _headers(self, body: str) -> dict:
        headers = {"Content-Type": "application/json"}
        if self._auth_account is not None:
            message = encode_defunct(text=Web3.to_hex(Web3.keccak(text=body)))
            signature = self._auth_account.sign_message(message).signature
            headers["X-Flashbots-Signature"] = (
                f"{self._auth_account.address}:{Web3.to_hex(signature)}"
            )
        return headers

    async def submit(
        self,
        signed_transactions: Sequence[bytes],
        target_block: int,
        min_timestamp: int = 0,
        max_timestamp: int = 0,
    ) -> List[RelayResponse]:
        """Send the bundle to every relay; never raises for per-relay failures."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        body = self.build_request(signed_transactions, target_block, min_timestamp, max_timestamp)
        headers = self._headers(body)
        return list(
            await asyncio.gather(*(self._post(url, body, headers) for url in self.urls))
        )

    async def _post(self, url: str, body: str, headers: dict) -> RelayResponse:
        try:
            async with self._session.post(
                url,
                data=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                payload = await response.json(content_type=None)
                status = response.status
        except asyncio.TimeoutError:
            logger.warning(f"Relay {url} timed out")
            return RelayResponse(url, accepted=False, error="timeout", transport_error=True)
        except (aiohttp.ClientError, json.JSONDecodeError) as e:
            logger.warning(f"Relay {url} failed: {e}")
            return RelayResponse(url, accepted=False, error=str(e), transport_error=True)

        if status >= 400 or not isinstance(payload, dict) or payload.get("error"):
            error = payload.get("error") if isinstance(payload, dict) else payload
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.warning(f"Relay {url} rejected bundle ({status}): {message}")
            return RelayResponse(url, accepted=False, error=message)

        result = payload.get("result")
        bundle_hash = result.get("bundleHash") if isinstance(result, dict) else result
        logger.info(f"Relay {url} accepted bundle {bundle_hash}")
        return RelayResponse(url, accepted=True, bundle_hash=bundle_hash)
