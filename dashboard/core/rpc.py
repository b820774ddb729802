import asyncio
import logging
from typing import Any

from web3 import AsyncWeb3

from dashboard.core.config import mask_url
from dashboard.core.etherscan import to_decimal
from dashboard.core.models import TokenInfo

logger = logging.getLogger(__name__)

# Minimal ERC20 ABI: reads plus transfer
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
]


class ChainGateway:
    """
    Everything the dashboard asks of the RPC node.
    Nonce, gas and signing are left to web3.py / eth-account.
    """

    def __init__(self, rpc_url: str) -> None:
        logger.info("[RPC] Connecting to %s", mask_url(rpc_url))
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

    def _token(self, token_address: str):
        return self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(token_address), abi=ERC20_ABI
        )

    async def chain_id(self) -> int:
        return await self.w3.eth.chain_id

    async def native_balance(self, address: str) -> float:
        wei = await self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address))
        return to_decimal(wei, 18)

    async def token_balance_raw(self, token_address: str, holder: str) -> int:
        contract = self._token(token_address)
        return await contract.functions.balanceOf(
            AsyncWeb3.to_checksum_address(holder)
        ).call()

    async def token_decimals(self, token_address: str) -> int:
        return await self._token(token_address).functions.decimals().call()

    async def token_symbol(self, token_address: str) -> str:
        return await self._token(token_address).functions.symbol().call()

    async def token_info(self, token_address: str, holder: str) -> TokenInfo:
        raw, decimals, symbol = await asyncio.gather(
            self.token_balance_raw(token_address, holder),
            self.token_decimals(token_address),
            self.token_symbol(token_address),
        )
        return TokenInfo(
            balance=to_decimal(raw, decimals), decimals=decimals, symbol=symbol
        )

    def signer_address(self, private_key: str) -> str:
        return self.w3.eth.account.from_key(private_key).address

    async def send_token_transfer(
        self, token_address: str, private_key: str, to_address: str, amount_units: int
    ) -> str:
        """
        Signs and broadcasts ERC20 transfer(to, amount).
        Returns the 0x-prefixed tx hash.
        """
        account = self.w3.eth.account.from_key(private_key)
        nonce = await self.w3.eth.get_transaction_count(account.address)
        tx = await self._token(token_address).functions.transfer(
            AsyncWeb3.to_checksum_address(to_address), amount_units
        ).build_transaction({"from": account.address, "nonce": nonce})

        signed = account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return AsyncWeb3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> dict[str, Any]:
        receipt = await self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=timeout
        )
        return dict(receipt)
