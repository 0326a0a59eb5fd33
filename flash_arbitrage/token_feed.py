"""
Token universe feed.

Fetches candidate tokens from an HTTP endpoint that returns either a JSON
array or ``{"tokens": [...]}`` of ``{address, symbol, decimals, volume}``
records, and keeps the top N by volume.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from .exceptions import NetworkError
from .network.retry import RetryPolicy, with_retry
from .types import TokenInfo

logger = logging.getLogger(__name__)


class TokenUniverseFeed:
    def __init__(
        self,
        url: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        top_n: int = 20,
        timeout: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.url = url
        self.top_n = top_n
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout
        self._retry_policy = retry_policy or RetryPolicy(max_attempts=2, base_delay=1.0)

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch(self) -> List[TokenInfo]:
        """Top-N tokens by volume; an unreachable feed yields an empty list."""
        try:
            payload = await with_retry(
                self._retry_policy, self._get, operation=f"token feed {self.url}"
            )
        except NetworkError as e:
            logger.error(f"Token feed unavailable: {e}")
            return []

        tokens = parse_token_records(payload)[: self.top_n]
        logger.info(f"Token feed returned {len(tokens)} tokens (top {self.top_n})")
        return tokens

    async def _get(self) -> Any:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            async with self._session.get(
                self.url, timeout=aiohttp.ClientTimeout(total=self._timeout)
            ) as response:
                if response.status >= 400:
                    raise NetworkError(
                        f"Token feed returned {response.status}",
                        endpoint=self.url,
                        status_code=response.status,
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Token feed timed out after {self._timeout}s", endpoint=self.url) from e
        except (aiohttp.ClientError, ValueError) as e:
            raise NetworkError(f"Token feed request failed: {e}", endpoint=self.url) from e


def parse_token_records(payload: Any) -> List[TokenInfo]:
    """Validate records and sort by volume descending; malformed records are skipped."""
    records = payload.get("tokens") if isinstance(payload, dict) else payload
    if not isinstance(records, list):
        logger.warning(f"Unexpected token feed payload type: {type(payload).__name__}")
        return []

    ranked = []
    for record in records:
        parsed = _parse_record(record)
        if parsed is not None:
            ranked.append(parsed)

    ranked.sort(key=lambda item: item[0], reverse=True)
    return [token for _, token in ranked]


def _parse_record(record: Dict[str, Any]):
    if not isinstance(record, dict):
        return None
    try:
        token = TokenInfo(
            address=record["address"],
            symbol=str(record.get("symbol") or ""),
            decimals=int(record.get("decimals", 18)),
        )
        volume = float(record.get("volume") or 0)
    except (KeyError, TypeError, ValueError) as e:
        logger.debug(f"Skipping malformed token record {record!r}: {e}")
        return None
    return volume, token
