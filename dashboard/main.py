import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dashboard.core.chart import ChartPeriod
from dashboard.core.config import Settings, is_configured
from dashboard.core.errors import AggregationError, ConfigurationError, InvalidAddress
from dashboard.core.service import DashboardService

logger = logging.getLogger(__name__)

CONFIGURATION_HINT = "Please configure your .env file with valid API keys."


class DepositRequest(BaseModel):
    amount: str


class WithdrawRequest(BaseModel):
    to_address: str
    amount: str


def create_app(service: Optional[DashboardService] = None) -> FastAPI:
    if service is None:
        settings = Settings.from_env()
        logging.basicConfig(
            level=settings.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        )
        service = DashboardService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Runs once when the server starts. Settings are only reported here,
        each request validates what it needs.
        """
        logger.info("[SYSTEM] Starting Engine on chain %s...", service.settings.chain_id)
        for env_name, value in (
            ("RPC_URL", service.settings.rpc_url),
            ("TOKEN_CONTRACT_ADDRESS", service.settings.token_contract_address),
            ("ETHERSCAN_API_KEY", service.settings.etherscan_api_key),
            ("WALLET_ADDRESS", service.settings.wallet_address),
        ):
            if not is_configured(value):
                logger.warning("[SYSTEM] %s is not configured", env_name)
        yield

    app = FastAPI(title="EVM Wallet Dashboard Engine", lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(InvalidAddress)
    async def invalid_address_handler(request: Request, exc: InvalidAddress):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "hint": CONFIGURATION_HINT},
        )

    @app.exception_handler(AggregationError)
    async def aggregation_error_handler(request: Request, exc: AggregationError):
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.get("/dashboard")
    async def dashboard():
        """Everything the dashboard page renders for the configured wallet."""
        return await service.get_dashboard()

    @app.get("/wallet/{address}")
    async def wallet_balance(address: str):
        return await service.get_balance_snapshot(address)

    @app.get("/wallet/{address}/transfers")
    async def wallet_transfers(address: str):
        return await service.get_transfer_history(address)

    @app.get("/wallet/{address}/chart")
    async def wallet_chart(address: str, period: ChartPeriod = ChartPeriod.ONE_DAY):
        return await service.get_chart_series(address, period)

    @app.get("/wallet/{address}/profit")
    async def wallet_profit(address: str):
        return await service.get_profit_loss(address)

    @app.post("/deposit")
    async def deposit(body: DepositRequest):
        return await service.deposit(body.amount)

    @app.post("/withdraw")
    async def withdraw(body: WithdrawRequest):
        return await service.withdraw(body.to_address, body.amount)

    @app.get("/transfers/{tx_hash}")
    async def transfer_status(tx_hash: str):
        return {"tx_hash": tx_hash, "status": service.confirmation_status(tx_hash)}

    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "dashboard.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run()
