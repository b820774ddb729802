from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")

IN = "in"
OUT = "out"
NATIVE = "native"
TOKEN = "token"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """An enrichment fetch that returned live data."""

    value: T


@dataclass(frozen=True)
class Fallback(Generic[T]):
    """An enrichment fetch that failed and was replaced by a safe default."""

    value: T
    reason: str


Fetched = Union[Ok[T], Fallback[T]]


@dataclass(frozen=True)
class Transfer:
    hash: str
    from_address: str
    to_address: str
    native_amount: float  # in native units (ETH), 0.0 for token rows
    token_amount: float  # in token units, 0.0 for native rows
    timestamp: int  # unix seconds
    direction: str  # "in" | "out"
    asset: str  # "native" | "token"

    @property
    def amount(self) -> float:
        return self.token_amount if self.asset == TOKEN else self.native_amount


@dataclass(frozen=True)
class TokenInfo:
    balance: float
    decimals: int
    symbol: str


@dataclass(frozen=True)
class BalanceSnapshot:
    native_balance: float
    token_balance: float
    token_symbol: str
    token_decimals: int
    portfolio_value_usd: float
    profit: float
    profit_percent: float
    native_price_usd: float
    transfers: tuple[Transfer, ...] = ()


@dataclass(frozen=True)
class ChartPoint:
    value: float
    timestamp: float  # unix seconds


@dataclass(frozen=True)
class ProfitLoss:
    profit: float
    profit_percent: float
    chart: list[ChartPoint] = field(default_factory=list)


@dataclass(frozen=True)
class TransferResult:
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
