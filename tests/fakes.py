"""
In-memory stand-ins for aiohttp sessions, WebSockets and on-chain reads.

They implement only the slices of the real interfaces the engine touches,
so tests never open sockets.
"""

import json
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp
from eth_abi import encode

from flash_arbitrage.dex.abi import (
    CURVE_GET_DY,
    GET_AMOUNTS_OUT,
    QUOTE_EXACT_INPUT_SINGLE,
)
from flash_arbitrage.network.rpc_client import HealthStatus
from flash_arbitrage.types import DexKind, Quote
from flash_arbitrage.utils import to_checksum

WETH = to_checksum("0x82af49447d8a07e3bd95bd0d56f35241523fbab1")
USDC = to_checksum("0xaf88d065e77c8cc2239327c5edb3a432268e5831")
USDT = to_checksum("0xfd086bc7cd5c481dcc9c85ebe478a1c0b69fcbb9")
ARB = to_checksum("0x912ce59144191c1204e64559fe8253a0e49e6548")

EXECUTOR = to_checksum("0x3333333333333333333333333333333333333333")
BALANCER_VAULT = to_checksum("0xba12222222228d8ba445958a75a0704d566bf2c8")
TEST_PRIVATE_KEY = "0x" + "4c" * 32


class FakeResponse:
    """Async context manager shaped like ``aiohttp.ClientResponse``."""

    def __init__(self, payload: Any = None, status: int = 200, text: Optional[str] = None):
        self.status = status
        self._payload = payload
        self._text = text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        if self._text is not None and self._payload is None:
            return json.loads(self._text)
        return self._payload

    async def text(self):
        if self._text is not None:
            return self._text
        return json.dumps(self._payload)

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(
                request_info=None, history=(), status=self.status, message="error"
            )


class _RaisingContext:
    def __init__(self, error: BaseException):
        self._error = error

    async def __aenter__(self):
        raise self._error

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    Records requests and answers them from a queue or a handler.

    A queued item (or handler result) that is an exception is raised when
    the response context is entered, like a failed connection.
    """

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        handler: Optional[Callable[[str, Any], Any]] = None,
    ):
        self.requests: List[Dict[str, Any]] = []
        self._responses = list(responses or [])
        self._handler = handler
        self.closed = False

    def post(self, url, json=None, data=None, headers=None, timeout=None):
        body = json if json is not None else data
        self.requests.append({"method": "POST", "url": url, "body": body, "headers": headers})
        return self._answer(url, body)

    def get(self, url, timeout=None, **kwargs):
        self.requests.append({"method": "GET", "url": url, "body": None, "headers": None})
        return self._answer(url, None)

    def _answer(self, url, body):
        if self._handler is not None:
            result = self._handler(url, body)
        else:
            result = self._responses.pop(0)
        if isinstance(result, BaseException):
            return _RaisingContext(result)
        return result

    async def close(self):
        self.closed = True


def rpc_result(result: Any) -> Callable[[str, Any], FakeResponse]:
    """Handler answering every JSON-RPC request with ``result``."""

    def handler(url, body):
        return FakeResponse({"jsonrpc": "2.0", "id": body["id"], "result": result})

    return handler


def text_frame(payload: Any) -> SimpleNamespace:
    return SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=json.dumps(payload))


def notification(subscription_id: str, result: Any) -> SimpleNamespace:
    return text_frame(
        {
            "jsonrpc": "2.0",
            "method": "eth_subscription",
            "params": {"subscription": subscription_id, "result": result},
        }
    )


class FakeWebSocket:
    """Replays an ack followed by a fixed list of frames, then ends."""

    def __init__(self, frames=(), ack: Any = None):
        self.sent: List[Dict[str, Any]] = []
        self._frames = list(frames)
        self._ack = ack if ack is not None else {"jsonrpc": "2.0", "id": 1, "result": "0xsub"}
        self.closed = False

    async def send_json(self, data):
        self.sent.append(data)

    async def receive_json(self):
        if isinstance(self._ack, BaseException):
            raise self._ack
        return self._ack

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed or not self._frames:
            raise StopAsyncIteration
        return self._frames.pop(0)

    def exception(self):
        return None

    async def close(self):
        self.closed = True


class FakeWsSession:
    """Hands out the given sockets in order; afterwards every connect is refused."""

    def __init__(self, sockets=()):
        self._sockets = list(sockets)
        self.urls: List[str] = []
        self.closed = False

    async def ws_connect(self, url, **kwargs):
        self.urls.append(url)
        if not self._sockets:
            raise aiohttp.ClientConnectionError(f"refused: {url}")
        item = self._sockets.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self):
        self.closed = True


class FakeAdapter:
    """Quoting adapter returning canned outputs, or raising."""

    def __init__(
        self,
        name: str,
        outputs: Optional[Dict[Tuple[str, str], int]] = None,
        *,
        kind=None,
        router: Optional[str] = None,
        fee: int = 0,
        error: Optional[BaseException] = None,
        gas: int = 100_000,
    ):
        self.name = name
        self.kind = kind or DexKind.UNISWAP_V2
        self.router = router or "0x" + "12" * 20
        self.fee = fee
        self._outputs = {(a.lower(), b.lower()): v for (a, b), v in (outputs or {}).items()}
        self._error = error
        self._gas = gas
        self.calls: List[Tuple[str, str, int]] = []

    async def quote(self, token_in, token_out, amount_in):
        self.calls.append((token_in, token_out, amount_in))
        if self._error is not None:
            raise self._error
        amount_out = self._outputs.get((token_in.lower(), token_out.lower()), 0)
        return Quote(
            dex=self.name,
            amount_in=amount_in,
            amount_out=amount_out,
            estimated_gas=self._gas,
            kind=self.kind,
            router=self.router,
            fee=self.fee,
        )


class RateTable:
    """Linear exchange rates ``amount * num // den`` per (router, token_in, token_out)."""

    def __init__(self):
        self._rates: Dict[Tuple[str, str, str], Tuple[int, int]] = {}

    def set(self, router: str, token_in: str, token_out: str, num: int, den: int = 1):
        self._rates[(router.lower(), token_in.lower(), token_out.lower())] = (num, den)

    def out(self, router: str, token_in: str, token_out: str, amount: int) -> int:
        rate = self._rates.get((router.lower(), token_in.lower(), token_out.lower()))
        if rate is None:
            return 0
        num, den = rate
        return amount * num // den


class FakeChainReader:
    """
    ``eth_call`` backend understanding getAmountsOut, QuoterV2 and get_dy.

    Curve pools need their coin order registered through ``curve_coins``.
    """

    def __init__(self, rates: RateTable, curve_coins: Optional[Dict[str, List[str]]] = None):
        self.rates = rates
        self.curve_coins = {k.lower(): v for k, v in (curve_coins or {}).items()}
        self.calls: List[Tuple[str, bytes]] = []

    async def eth_call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        self.calls.append((to, data))
        selector = data[:4]
        if selector == GET_AMOUNTS_OUT.selector:
            amount, path = GET_AMOUNTS_OUT.decode_call(data)
            out = self.rates.out(to, path[0], path[-1], amount)
            return encode(["uint256[]"], [[amount, out]])
        if selector == QUOTE_EXACT_INPUT_SINGLE.selector:
            ((token_in, token_out, amount, fee, _limit),) = QUOTE_EXACT_INPUT_SINGLE.decode_call(
                data
            )
            out = self.rates.out(to, token_in, token_out, amount)
            return encode(["uint256", "uint160", "uint32", "uint256"], [out, 0, 1, 95_000])
        if selector == CURVE_GET_DY.selector:
            i, j, amount = CURVE_GET_DY.decode_call(data)
            coins = self.curve_coins[to.lower()]
            return encode(["uint256"], [self.rates.out(to, coins[i], coins[j], amount)])
        raise ValueError(f"Unexpected call to {to}: 0x{selector.hex()}")


class FakeRpc(FakeChainReader):
    """RPC client double used by the pipeline and engine tests."""

    def __init__(
        self,
        rates: Optional[RateTable] = None,
        *,
        chain_id: int = 42161,
        gas_price: int = 10**7,
        nonce: int = 7,
        block: int = 1_000,
        transactions: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        super().__init__(rates or RateTable())
        self.health = HealthStatus.HEALTHY
        self._chain_id = chain_id
        self._gas_price = gas_price
        self._nonce = nonce
        self._block = block
        self.transactions = transactions or {}
        self.closed = False

    async def chain_id(self):
        return self._chain_id

    async def gas_price(self):
        return self._gas_price

    async def get_transaction_count(self, address, block="pending"):
        return self._nonce

    async def block_number(self):
        return self._block

    async def get_transaction(self, tx_hash):
        return self.transactions.get(tx_hash)

    async def close(self):
        self.closed = True


class FakeSimulator:
    def __init__(self, result):
        self.result = result
        self.calls: List[Dict[str, Any]] = []

    async def simulate(self, raw_transactions, *, owner=None, profit_token=None):
        self.calls.append(
            {"raw": list(raw_transactions), "owner": owner, "profit_token": profit_token}
        )
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result

    async def close(self):
        pass


class FakeRelay:
    def __init__(self, responses):
        self.responses = responses
        self.calls: List[Tuple[List[bytes], int]] = []

    async def submit(self, signed_transactions, target_block, min_timestamp=0, max_timestamp=0):
        self.calls.append((list(signed_transactions), target_block))
        if isinstance(self.responses, BaseException):
            raise self.responses
        return list(self.responses)

    async def close(self):
        pass


class RecordingSink:
    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def record(self, event):
        self.events.append(event)

    def of(self, kind: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e.get("event") == kind]
