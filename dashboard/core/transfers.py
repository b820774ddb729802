import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Callable

from dashboard.core.cache import TimedCache, balance_key, profit_key
from dashboard.core.config import Settings, is_configured, is_valid_address
from dashboard.core.errors import (
    ConfigurationError,
    DashboardError,
    InsufficientBalance,
    InvalidAddress,
    InvalidAmount,
    SubmissionFailed,
    SubmissionTimeout,
)
from dashboard.core.models import TransferResult
from dashboard.core.rpc import ChainGateway

logger = logging.getLogger(__name__)

CONFIRMATION_TIMEOUT = 60.0
# How long the background receipt wait keeps polling after the caller gave up
RECEIPT_WAIT_LIMIT = 600.0
# Settled receipts nobody asked about are dropped past this many entries
MAX_TRACKED_RECEIPTS = 256
DEFAULT_DECIMALS = 6

PENDING = "pending"
CONFIRMED = "confirmed"
FAILED = "failed"
UNKNOWN = "unknown"


def parse_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount("Please enter a valid amount") from None
    if not value.is_finite() or value <= 0:
        raise InvalidAmount("Please enter a valid amount")
    return value


def to_units(value: Decimal, decimals: int) -> int:
    units = int(value.scaleb(decimals))
    if units <= 0:
        raise InvalidAmount("Please enter a valid amount")
    return units


class TransferSubmitter:
    """
    Sends token deposits/withdrawals and waits (bounded) for the receipt.
    Never raises: every outcome is a TransferResult.

    A transfer reported as "Transaction timeout" may still land on-chain.
    Its receipt wait keeps running in the background and can be polled
    with confirmation_status(); the cache is not touched in that case.
    """

    def __init__(
        self,
        cache: TimedCache,
        settings: Settings,
        gateway: Callable[[], ChainGateway],
        confirmation_timeout: float = CONFIRMATION_TIMEOUT,
    ) -> None:
        self.cache = cache
        self.settings = settings
        self.gateway = gateway
        self.confirmation_timeout = confirmation_timeout
        # Structure: { "0xtxhash": asyncio.Task -> receipt dict }
        self._receipts: dict[str, asyncio.Task] = {}
        self.max_tracked = MAX_TRACKED_RECEIPTS

    async def deposit(self, amount: str) -> TransferResult:
        logger.info("[TRANSFER] Deposit requested: %s", amount)
        tx_hash = None
        try:
            value = parse_amount(amount)
            private_key = self._private_key()

            destination = self.settings.wallet_address
            if not is_configured(destination) or not is_valid_address(destination):
                raise ConfigurationError("Wallet address not configured")

            gateway = self.gateway()
            token = self._token_address()
            units = to_units(value, await self._decimals(gateway, token))

            logger.info("[TRANSFER] Sending %s (%d units) to %s", value, units, destination)
            tx_hash = await gateway.send_token_transfer(token, private_key, destination, units)
            logger.info("[TRANSFER] Transaction sent: %s", tx_hash)

            await self._confirm(gateway, tx_hash)
            self._invalidate(destination)
            return TransferResult(success=True, tx_hash=tx_hash)
        except DashboardError as e:
            logger.error("[TRANSFER] Deposit failed: %s", e)
            return TransferResult(success=False, tx_hash=tx_hash, error=str(e))
        except Exception as e:
            logger.exception("[TRANSFER] Deposit failed")
            return TransferResult(
                success=False, tx_hash=tx_hash, error=str(e) or "Transaction failed"
            )

    async def withdraw(self, to_address: str, amount: str) -> TransferResult:
        logger.info("[TRANSFER] Withdraw requested: %s to %s", amount, to_address)
        tx_hash = None
        try:
            if not is_valid_address(to_address):
                raise InvalidAddress("Invalid recipient address")
            value = parse_amount(amount)
            private_key = self._private_key()

            gateway = self.gateway()
            token = self._token_address()
            sender = gateway.signer_address(private_key)

            balance, decimals = await asyncio.gather(
                gateway.token_balance_raw(token, sender),
                self._decimals(gateway, token),
            )
            units = to_units(value, decimals)
            logger.info("[TRANSFER] Balance check: have %d, need %d", balance, units)
            if balance < units:
                raise InsufficientBalance("Insufficient balance")

            tx_hash = await gateway.send_token_transfer(token, private_key, to_address, units)
            logger.info("[TRANSFER] Transaction sent: %s", tx_hash)

            await self._confirm(gateway, tx_hash)
            self._invalidate(sender)
            self._invalidate(to_address)
            return TransferResult(success=True, tx_hash=tx_hash)
        except DashboardError as e:
            logger.error("[TRANSFER] Withdraw failed: %s", e)
            return TransferResult(success=False, tx_hash=tx_hash, error=str(e))
        except Exception as e:
            logger.exception("[TRANSFER] Withdraw failed")
            return TransferResult(
                success=False, tx_hash=tx_hash, error=str(e) or "Transaction failed"
            )

    def confirmation_status(self, tx_hash: str) -> str:
        task = self._receipts.get(tx_hash)
        if task is None:
            return UNKNOWN
        if not task.done():
            return PENDING

        # Settled entries are reported once, then forgotten
        del self._receipts[tx_hash]
        if task.cancelled() or task.exception() is not None:
            return UNKNOWN
        return CONFIRMED if task.result().get("status") == 1 else FAILED

    async def _confirm(self, gateway: ChainGateway, tx_hash: str) -> None:
        task = asyncio.ensure_future(gateway.wait_for_receipt(tx_hash, RECEIPT_WAIT_LIMIT))
        task.add_done_callback(self._log_settled(tx_hash))
        self._prune_receipts()
        self._receipts[tx_hash] = task

        try:
            receipt = await asyncio.wait_for(
                asyncio.shield(task), timeout=self.confirmation_timeout
            )
        except asyncio.TimeoutError:
            raise SubmissionTimeout("Transaction timeout") from None

        logger.info(
            "[TRANSFER] Confirmed %s: status=%s block=%s",
            tx_hash,
            receipt.get("status"),
            receipt.get("blockNumber"),
        )
        if receipt.get("status") != 1:
            raise SubmissionFailed("Transaction failed on-chain")

    def _prune_receipts(self) -> None:
        settled = [h for h, t in self._receipts.items() if t.done()]
        while settled and len(self._receipts) >= self.max_tracked:
            del self._receipts[settled.pop(0)]

    def _log_settled(self, tx_hash: str):
        def callback(task: asyncio.Task) -> None:
            if task.cancelled():
                return
            error = task.exception()
            if error is not None:
                logger.warning("[TRANSFER] Receipt wait for %s ended: %s", tx_hash, error)

        return callback

    def _invalidate(self, address: str) -> None:
        self.cache.invalidate(balance_key(address, self.settings.chain_id))
        self.cache.invalidate(profit_key(address, self.settings.chain_id))
        logger.info("[TRANSFER] Cache cleared for %s", address)

    def _private_key(self) -> str:
        if not is_configured(self.settings.wallet_private_key):
            raise ConfigurationError("Wallet private key not configured")
        return self.settings.wallet_private_key

    def _token_address(self) -> str:
        return self.settings.require("token_contract_address", "TOKEN_CONTRACT_ADDRESS")

    async def _decimals(self, gateway: ChainGateway, token: str) -> int:
        try:
            return await gateway.token_decimals(token)
        except Exception as e:
            logger.warning("[TRANSFER] decimals() failed, assuming %d: %s", DEFAULT_DECIMALS, e)
            return DEFAULT_DECIMALS
