import asyncio

import httpx
import pytest

from dashboard.core.cache import TimedCache
from dashboard.core.config import Settings
from dashboard.core.models import TokenInfo
from dashboard.core.service import DashboardService

NOW = 1_700_000_000
WALLET = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"
SIGNER = "0x3333333333333333333333333333333333333333"
TOKEN = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
TX_HASH = "0x" + "ab" * 32


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """In-memory stand-in for ChainGateway."""

    def __init__(self) -> None:
        self.native = 1.5
        self.token = TokenInfo(balance=80.0, decimals=6, symbol="USDC")
        self.raw_balance = 100 * 10**6
        self.decimals = 6
        self.receipt = {"status": 1, "blockNumber": 123}
        self.receipt_delay = 0.0
        self.chain_error = None
        self.native_error = None
        self.token_error = None
        self.sent = []
        self.native_calls = 0

    async def chain_id(self) -> int:
        if self.chain_error:
            raise self.chain_error
        return 1

    async def native_balance(self, address: str) -> float:
        self.native_calls += 1
        if self.native_error:
            raise self.native_error
        return self.native

    async def token_info(self, token_address: str, holder: str) -> TokenInfo:
        if self.token_error:
            raise self.token_error
        return self.token

    async def token_balance_raw(self, token_address: str, holder: str) -> int:
        return self.raw_balance

    async def token_decimals(self, token_address: str) -> int:
        return self.decimals

    def signer_address(self, private_key: str) -> str:
        return SIGNER

    async def send_token_transfer(self, token_address, private_key, to_address, amount_units):
        self.sent.append((to_address, amount_units))
        return TX_HASH

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> dict:
        if self.receipt_delay:
            await asyncio.sleep(self.receipt_delay)
        return self.receipt


def native_row(tx_hash, frm, to, wei, ts):
    return {"hash": tx_hash, "from": frm, "to": to, "value": str(wei), "timeStamp": str(ts)}


def token_row(tx_hash, frm, to, amount, ts, decimals=6):
    return {
        "hash": tx_hash,
        "from": frm,
        "to": to,
        "value": str(int(amount * 10**decimals)),
        "timeStamp": str(ts),
        "tokenDecimal": str(decimals),
    }


class Upstream:
    """Fake CoinGecko + Etherscan behind one httpx.MockTransport."""

    def __init__(self) -> None:
        self.price_status = 200
        self.price_body = {"ethereum": {"usd": 2000.0}}
        self.native_rows = []
        self.token_rows = []
        self.explorer_status = "1"
        self.explorer_error = None
        self.price_error = None
        self.requests = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "api.coingecko.com":
            if self.price_error:
                raise self.price_error
            return httpx.Response(self.price_status, json=self.price_body)

        if self.explorer_error:
            raise self.explorer_error
        if self.explorer_status != "1":
            return httpx.Response(
                200, json={"status": "0", "message": "NOTOK", "result": "Invalid API Key"}
            )
        action = request.url.params["action"]
        rows = self.native_rows if action == "txlist" else self.token_rows
        return httpx.Response(200, json={"status": "1", "message": "OK", "result": rows})

    def explorer_requests(self):
        return [r for r in self.requests if r.url.host == "api.etherscan.io"]

    def price_requests(self):
        return [r for r in self.requests if r.url.host == "api.coingecko.com"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TimedCache(clock=clock)


@pytest.fixture
def settings():
    return Settings(
        rpc_url="http://rpc.local",
        token_contract_address=TOKEN,
        etherscan_api_key="KEY123",
        wallet_address=WALLET,
        wallet_private_key="0x" + "11" * 32,
        chain_id="1",
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def service(settings, cache, gateway, upstream):
    return DashboardService(
        settings,
        cache=cache,
        gateway_factory=lambda url: gateway,
        transport=upstream.transport,
    )
