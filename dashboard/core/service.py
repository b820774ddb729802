import asyncio
import logging
from typing import Any, Callable, Optional

import httpx

from dashboard.core.cache import TimedCache, profit_key
from dashboard.core.chart import DEFAULT_PERIOD, ChartBuilder
from dashboard.core.coingecko import CoinGeckoClient
from dashboard.core.config import Settings, is_configured
from dashboard.core.errors import (
    AggregationError,
    ConfigurationError,
    InvalidAddress,
)
from dashboard.core.etherscan import EtherscanClient
from dashboard.core.models import (
    BalanceSnapshot,
    ChartPoint,
    ProfitLoss,
    Transfer,
    TransferResult,
)
from dashboard.core.portfolio import PortfolioAggregator
from dashboard.core.rpc import ChainGateway
from dashboard.core.transfers import TransferSubmitter

logger = logging.getLogger(__name__)


class DashboardService:
    """
    The whole public surface of the engine, wired around one cache.
    Construct once per process.
    """

    def __init__(
        self,
        settings: Settings,
        cache: Optional[TimedCache] = None,
        gateway_factory: Callable[[str], ChainGateway] = ChainGateway,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.cache = cache if cache is not None else TimedCache()
        self.gateway_factory = gateway_factory
        self._gateway: Optional[ChainGateway] = None

        self.prices = CoinGeckoClient(self.cache, settings.price_asset_id, transport)
        self.history = EtherscanClient(self.cache, settings, transport)
        self.portfolio = PortfolioAggregator(
            self.cache, settings, self.prices, self.history, self.gateway
        )
        self.charts = ChartBuilder(self.cache, settings, self.history, self.cache.clock)
        self.submitter = TransferSubmitter(self.cache, settings, self.gateway)

    def gateway(self) -> ChainGateway:
        if self._gateway is None:
            rpc_url = self.settings.rpc_url
            if not is_configured(rpc_url):
                raise ConfigurationError("RPC_URL not configured")
            self._gateway = self.gateway_factory(rpc_url)
        return self._gateway

    async def get_balance_snapshot(self, address: str) -> BalanceSnapshot:
        return await self.portfolio.get_balance_snapshot(address)

    async def get_transfer_history(self, address: str) -> list[Transfer]:
        return await self.history.get_transfer_history(address)

    async def get_chart_series(self, address: str, period=DEFAULT_PERIOD) -> list[ChartPoint]:
        return await self.charts.get_chart_series(address, period)

    async def get_profit_loss(self, address: str) -> ProfitLoss:
        key = profit_key(address, self.settings.chain_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            snapshot = await self.get_balance_snapshot(address)
            chart = await self.get_chart_series(address, DEFAULT_PERIOD)
        except (InvalidAddress, ConfigurationError):
            raise
        except Exception as e:
            logger.error("[WALLET] Profit/loss failed for %s: %s", address, e)
            raise AggregationError("Failed to calculate profit/loss") from e

        result = ProfitLoss(
            profit=snapshot.profit, profit_percent=snapshot.profit_percent, chart=chart
        )
        self.cache.set(key, result)
        return result

    async def get_dashboard(self) -> dict[str, Any]:
        """Figures for the configured wallet, as the dashboard page shows them."""
        address = self.settings.require("wallet_address", "WALLET_ADDRESS")
        snapshot, profit = await asyncio.gather(
            self.get_balance_snapshot(address), self.get_profit_loss(address)
        )
        return {
            "public_key": address,
            "balance": snapshot.token_balance,
            "usdc_value": snapshot.token_balance,
            "portfolio_value": snapshot.portfolio_value_usd,
            "profit": profit.profit,
            "profit_percent": profit.profit_percent,
            "chart_data": profit.chart,
        }

    async def deposit(self, amount: str) -> TransferResult:
        return await self.submitter.deposit(amount)

    async def withdraw(self, to_address: str, amount: str) -> TransferResult:
        return await self.submitter.withdraw(to_address, amount)

    def confirmation_status(self, tx_hash: str) -> str:
        return self.submitter.confirmation_status(tx_hash)
