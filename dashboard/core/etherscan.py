import asyncio
import logging
from decimal import Decimal
from typing import Optional

import httpx

from dashboard.core.cache import TimedCache, history_key
from dashboard.core.config import Settings, is_configured
from dashboard.core.errors import UpstreamUnavailable
from dashboard.core.models import IN, NATIVE, OUT, TOKEN, Fallback, Fetched, Ok, Transfer

logger = logging.getLogger(__name__)

BASE_URL = "https://api.etherscan.io/v2/api"
REQUEST_TIMEOUT = 10.0
END_BLOCK = 99999999

NATIVE_LIMIT = 10
TOKEN_LIMIT = 20
HISTORY_LIMIT = 30
DEFAULT_TOKEN_DECIMALS = 6


def to_decimal(raw_value: int, decimals: int) -> float:
    """
    Converts raw integer (Wei) to float
    """
    if raw_value == 0:
        return 0.0
    return float(Decimal(raw_value) / Decimal(10**decimals))


class EtherscanClient:
    """
    Pulls the latest native and token transfers of a wallet.
    Empty list means "no data", not "no transfers".
    """

    def __init__(
        self,
        cache: TimedCache,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cache = cache
        self.settings = settings
        self.transport = transport

    async def get_transfer_history(
        self, address: str, token_decimals: int = DEFAULT_TOKEN_DECIMALS
    ) -> list[Transfer]:
        result = await self.fetch_transfer_history(address, token_decimals)
        return result.value

    async def fetch_transfer_history(
        self, address: str, token_decimals: int = DEFAULT_TOKEN_DECIMALS
    ) -> Fetched[list[Transfer]]:
        key = history_key(address, self.settings.chain_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("[ETHERSCAN] Returning cached transfers for %s", address)
            return Ok(cached)

        if not is_configured(self.settings.etherscan_api_key):
            logger.error("[ETHERSCAN] ETHERSCAN_API_KEY not configured")
            return Fallback([], reason="ETHERSCAN_API_KEY not configured")

        try:
            async with httpx.AsyncClient(
                timeout=REQUEST_TIMEOUT, transport=self.transport
            ) as client:
                native_rows, token_rows = await asyncio.gather(
                    self._fetch_list(client, "txlist", address),
                    self._fetch_token_list(client, address),
                )
        except (httpx.HTTPError, UpstreamUnavailable) as e:
            logger.error("[ETHERSCAN] Connection failed for %s: %s", address, e)
            return Fallback([], reason=str(e))

        try:
            transfers = [
                self._normalize_native(row, address)
                for row in native_rows[:NATIVE_LIMIT]
            ]
            transfers.extend(
                self._normalize_token(row, address, token_decimals)
                for row in token_rows[:TOKEN_LIMIT]
            )
        except (ValueError, TypeError, AttributeError) as e:
            logger.error("[ETHERSCAN] Unparseable transfer row for %s: %s", address, e)
            return Fallback([], reason=str(e))
        transfers.sort(key=lambda t: t.timestamp, reverse=True)
        transfers = transfers[:HISTORY_LIMIT]

        self.cache.set(key, transfers)
        logger.info(
            "[ETHERSCAN] Synced %d native, %d token transfers for %s",
            min(len(native_rows), NATIVE_LIMIT),
            min(len(token_rows), TOKEN_LIMIT),
            address,
        )
        return Ok(transfers)

    async def _fetch_token_list(self, client: httpx.AsyncClient, address: str) -> list[dict]:
        if not is_configured(self.settings.token_contract_address):
            logger.warning("[ETHERSCAN] TOKEN_CONTRACT_ADDRESS not configured, skipping tokentx")
            return []
        return await self._fetch_list(client, "tokentx", address)

    async def _fetch_list(
        self, client: httpx.AsyncClient, action: str, address: str
    ) -> list[dict]:
        params = {
            "chainid": self.settings.chain_id,
            "module": "account",
            "action": action,
            "address": address,
            "startblock": 0,
            "endblock": END_BLOCK,
            "sort": "desc",
            "apikey": self.settings.etherscan_api_key,
        }
        if action == "tokentx":
            params["contractaddress"] = self.settings.token_contract_address

        resp = await client.get(BASE_URL, params=params)
        if resp.status_code != 200:
            raise UpstreamUnavailable(f"{action}: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"{action}: malformed body") from e

        if data.get("status") == "1" and isinstance(data.get("result"), list):
            return data["result"]

        error_reason = data.get("result", "Unknown Error")
        logger.warning(
            "[ETHERSCAN] No %s data: %s -> %s", action, data.get("message"), error_reason
        )
        if "API Key" in str(error_reason):
            logger.critical("[ETHERSCAN] Etherscan API KEY is missing or invalid")
        return []

    def _direction(self, row: dict, address: str) -> str:
        return IN if (row.get("to") or "").lower() == address.lower() else OUT

    def _normalize_native(self, row: dict, address: str) -> Transfer:
        return Transfer(
            hash=row.get("hash", ""),
            from_address=row.get("from", ""),
            to_address=row.get("to") or "",
            native_amount=to_decimal(int(row.get("value") or 0), 18),
            token_amount=0.0,
            timestamp=int(row.get("timeStamp") or 0),
            direction=self._direction(row, address),
            asset=NATIVE,
        )

    def _normalize_token(self, row: dict, address: str, token_decimals: int) -> Transfer:
        decimals = int(row.get("tokenDecimal") or token_decimals)
        return Transfer(
            hash=row.get("hash", ""),
            from_address=row.get("from", ""),
            to_address=row.get("to") or "",
            native_amount=0.0,
            token_amount=to_decimal(int(row.get("value") or 0), decimals),
            timestamp=int(row.get("timeStamp") or 0),
            direction=self._direction(row, address),
            asset=TOKEN,
        )
