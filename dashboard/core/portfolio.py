import asyncio
import logging
from typing import Callable, Iterable

from dashboard.core.cache import TimedCache, balance_key
from dashboard.core.coingecko import CoinGeckoClient
from dashboard.core.config import Settings, validate_address
from dashboard.core.errors import AggregationError, ConfigurationError, InvalidAddress
from dashboard.core.etherscan import EtherscanClient
from dashboard.core.models import (
    TOKEN,
    BalanceSnapshot,
    Fallback,
    Fetched,
    Ok,
    TokenInfo,
    Transfer,
)
from dashboard.core.rpc import ChainGateway

logger = logging.getLogger(__name__)

FALLBACK_TOKEN = TokenInfo(balance=0.0, decimals=6, symbol="USDC")


def calculate_token_profit_loss(
    transfers: Iterable[Transfer], current_balance: float, address: str
) -> tuple[float, float]:
    """
    Token-denominated P/L: what the wallet holds now vs. what was put in.
    Returns (profit, profit_percent).

    When net withdrawals exceed deposits (invested < 0) the whole current
    balance counts as profit at 100%. This is a display approximation,
    not a financial figure.
    """
    token_txs = [t for t in transfers if t.asset == TOKEN]
    if not token_txs:
        logger.warning("[WALLET] No token transfers found, P/L is zero")
        return 0.0, 0.0

    total_in = 0.0
    total_out = 0.0
    for tx in token_txs:
        if tx.to_address.lower() == address.lower():
            total_in += tx.token_amount
        else:
            total_out += tx.token_amount

    invested = total_in - total_out
    logger.debug(
        "[WALLET] P/L in=%s out=%s invested=%s current=%s",
        total_in,
        total_out,
        invested,
        current_balance,
    )

    if invested <= 0:
        return current_balance, (100.0 if invested < 0 else 0.0)

    profit = current_balance - invested
    return profit, profit / invested * 100


class PortfolioAggregator:
    def __init__(
        self,
        cache: TimedCache,
        settings: Settings,
        prices: CoinGeckoClient,
        history: EtherscanClient,
        gateway: Callable[[], ChainGateway],
    ) -> None:
        self.cache = cache
        self.settings = settings
        self.prices = prices
        self.history = history
        self.gateway = gateway

    async def get_balance_snapshot(self, address: str) -> BalanceSnapshot:
        validate_address(address)
        key = balance_key(address, self.settings.chain_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("[WALLET] Returning cached snapshot for %s", address)
            return cached

        try:
            snapshot = await self._build_snapshot(address)
        except (InvalidAddress, ConfigurationError):
            raise
        except Exception as e:
            logger.exception("[WALLET] Snapshot failed for %s", address)
            raise AggregationError(f"Failed to fetch wallet data: {e}") from e

        self.cache.set(key, snapshot)
        return snapshot

    async def _build_snapshot(self, address: str) -> BalanceSnapshot:
        gateway = await self._connect()

        native_balance, token, price = await asyncio.gather(
            gateway.native_balance(address),
            self._fetch_token_info(gateway, address),
            self.prices.get_native_price(),
        )
        token_info = token.value
        logger.info(
            "[WALLET] %s holds %s native, %s %s",
            address,
            native_balance,
            token_info.balance,
            token_info.symbol,
        )

        portfolio_value = native_balance * price + token_info.balance
        transfers = await self.history.get_transfer_history(
            address, token_info.decimals
        )
        profit, profit_percent = calculate_token_profit_loss(
            transfers, token_info.balance, address
        )

        return BalanceSnapshot(
            native_balance=native_balance,
            token_balance=token_info.balance,
            token_symbol=token_info.symbol,
            token_decimals=token_info.decimals,
            portfolio_value_usd=round(portfolio_value, 2),
            profit=round(profit, 2),
            profit_percent=profit_percent,
            native_price_usd=price,
            transfers=tuple(transfers),
        )

    async def _connect(self) -> ChainGateway:
        gateway = self.gateway()
        try:
            chain_id = await gateway.chain_id()
        except Exception as e:
            raise ConfigurationError(f"RPC endpoint unreachable: {e}") from e
        logger.debug("[WALLET] Connected to chain %s", chain_id)
        return gateway

    async def _fetch_token_info(
        self, gateway: ChainGateway, address: str
    ) -> Fetched[TokenInfo]:
        try:
            token_address = self.settings.require(
                "token_contract_address", "TOKEN_CONTRACT_ADDRESS"
            )
            return Ok(await gateway.token_info(token_address, address))
        except Exception as e:
            logger.warning("[WALLET] Token balance fetch failed: %s", e)
            return Fallback(FALLBACK_TOKEN, reason=str(e))
