import os
import re
from dataclasses import dataclass
from typing import Optional

import httpx
from dotenv import load_dotenv

from dashboard.core.errors import ConfigurationError, InvalidAddress

load_dotenv()

PLACEHOLDER_MARKER = "your"
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_configured(value: Optional[str]) -> bool:
    """
    A value counts as configured when it is non-empty and is not
    a template placeholder like 'your_api_key_here'.
    """
    return bool(value) and PLACEHOLDER_MARKER not in value


def is_valid_address(address: Optional[str]) -> bool:
    return bool(address) and ADDRESS_PATTERN.match(address) is not None


def validate_address(address: Optional[str]) -> str:
    if not is_valid_address(address):
        raise InvalidAddress("Invalid Ethereum address")
    return address


def mask_url(url: str) -> str:
    """Keeps only scheme, host and port. Providers put the API key in the path."""
    parsed = httpx.URL(url)
    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme}://{parsed.host}{port}/***"


@dataclass(frozen=True)
class Settings:
    rpc_url: Optional[str] = None
    token_contract_address: Optional[str] = None
    etherscan_api_key: Optional[str] = None
    wallet_address: Optional[str] = None
    wallet_private_key: Optional[str] = None
    chain_id: str = "1"
    price_asset_id: str = "ethereum"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            rpc_url=os.getenv("RPC_URL"),
            token_contract_address=os.getenv("TOKEN_CONTRACT_ADDRESS"),
            etherscan_api_key=os.getenv("ETHERSCAN_API_KEY"),
            wallet_address=os.getenv("WALLET_ADDRESS"),
            wallet_private_key=os.getenv("WALLET_PRIVATE_KEY"),
            chain_id=os.getenv("CHAIN_ID", "1"),
            price_asset_id=os.getenv("PRICE_ASSET_ID", "ethereum"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def require(self, field: str, env_name: str) -> str:
        """
        Returns the setting or raises ConfigurationError.
        Checked per call, never at startup.
        """
        value = getattr(self, field)
        if not is_configured(value):
            raise ConfigurationError(f"{env_name} not configured")
        return value
