"""
Bundle simulation client.

Posts signed raw transactions to a Tenderly-style simulation endpoint and
reduces the answer to success, gas used and the balance change of the
profit token for the executor.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from ..exceptions import NetworkError, SimulationFailure
from ..utils import same_address, to_hex

logger = logging.getLogger(__name__)


@dataclass
class SimulationResult:
    success: bool
    gas_used: int = 0
    error: Optional[str] = None
    simulation_url: Optional[str] = None
    balance_delta: Optional[int] = None


class SimulationClient:
    def __init__(
        self,
        url: str,
        *,
        network_id: int,
        access_key: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ):
        self.url = url
        self.network_id = str(network_id)
        self._access_key = access_key
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def build_payload(self, raw_transactions: Sequence[bytes]) -> Dict[str, Any]:
        return {
            "network_id": self.network_id,
            "save": False,
            "save_if_fails": True,
            "simulation_type": "quick",
            "transactions": [
                {"raw_tx": to_hex(raw), "network_id": self.network_id}
                for raw in raw_transactions
            ],
        }

    async def simulate(
        self,
        raw_transactions: Sequence[bytes],
        *,
        owner: Optional[str] = None,
        profit_token: Optional[str] = None,
    ) -> SimulationResult:
        """
        Simulate ``raw_transactions`` in order against the pending state.

        Args:
            raw_transactions: Signed transactions
            owner: Address whose balance change is measured
            profit_token: Token whose balance change is measured

        Raises:
            NetworkError: If the service is unreachable or answers non-2xx
            SimulationFailure: If the answer cannot be parsed
        """
        if self._session is None:
            self._session = aiohttp.ClientSession()
        headers = {"Content-Type": "application/json"}
        if self._access_key:
            headers["X-Access-Key"] = self._access_key

        try:
            async with self._session.post(
                self.url,
                json=self.build_payload(raw_transactions),
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise NetworkError(
                        f"Simulation service returned {response.status}: {text[:200]}",
                        endpoint=self.url,
                        status_code=response.status,
                    )
                body = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Simulation timed out after {self._timeout}s", endpoint=self.url) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Simulation request failed: {e}", endpoint=self.url) from e

        return parse_simulation_response(body, owner=owner, profit_token=profit_token)


def parse_simulation_response(
    body: Any,
    owner: Optional[str] = None,
    profit_token: Optional[str] = None,
) -> SimulationResult:
    """
    Accept either a flat ``{success, gas_used, ...}`` body or Tenderly bundle results.

    Raises:
        SimulationFailure: If the body is not an object or carries unparseable numbers
    """
    if not isinstance(body, dict):
        raise SimulationFailure(f"Malformed simulation response: {str(body)[:200]}")

    try:
        return _parse_body(body, owner, profit_token)
    except (TypeError, ValueError, AttributeError) as e:
        raise SimulationFailure(
            f"Malformed simulation response: {e}", details={"body": str(body)[:500]}
        ) from e


def _quantity(value: Any) -> int:
    """Simulation services mix decimal ints, decimal strings and hex quantities."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"not a quantity: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.lstrip("-").lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def _parse_body(
    body: Dict[str, Any], owner: Optional[str], profit_token: Optional[str]
) -> SimulationResult:
    if "success" in body:
        delta = body.get("balance_delta")
        return SimulationResult(
            success=bool(body["success"]),
            gas_used=_quantity(body.get("gas_used")),
            error=body.get("error"),
            simulation_url=body.get("url"),
            balance_delta=_quantity(delta) if delta is not None else None,
        )

    results: List[Dict[str, Any]] = body.get("simulation_results") or []
    if not results:
        return SimulationResult(success=False, error="empty simulation response")

    gas_used = 0
    delta: Optional[int] = None
    error = None
    success = True
    for entry in results:
        tx = entry.get("transaction") or {}
        status = tx.get("status", entry.get("status"))
        gas_used += _quantity(tx.get("gas_used"))
        if status is False:
            success = False
            error = error or tx.get("error_message") or "transaction reverted"
        if owner and profit_token:
            change = _asset_delta(tx, owner, profit_token)
            if change is not None:
                delta = (delta or 0) + change

    simulation = (results[0].get("simulation") or {}).get("id")
    return SimulationResult(
        success=success,
        gas_used=gas_used,
        error=error,
        simulation_url=f"simulation:{simulation}" if simulation else None,
        balance_delta=delta,
    )


def _asset_delta(tx: Dict[str, Any], owner: str, token: str) -> Optional[int]:
    changes = (tx.get("transaction_info") or {}).get("asset_changes")
    if changes is None:
        return None
    delta = 0
    for change in changes:
        contract = (change.get("token_info") or {}).get("contract_address")
        if not same_address(contract, token):
            continue
        amount = _quantity(change.get("raw_amount"))
        if same_address(change.get("to"), owner):
            delta += amount
        if same_address(change.get("from"), owner):
            delta -= amount
    return delta
