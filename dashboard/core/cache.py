import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

FRESHNESS_WINDOW = 60  # seconds


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class TimedCache:
    """
    In-memory key/value store with a fixed freshness window.
    1. Reads are hits only while the entry is younger than the window
    2. Stale entries are dropped on read
    3. No other eviction: keys live for one dashboard process
    """

    def __init__(
        self,
        ttl: float = FRESHNESS_WINDOW,
        clock: Callable[[], float] = time.time,
    ) -> None:
        # Structure: { "balance_0xabc_1": CacheEntry(value, stored_at) }
        self._entries: dict[str, CacheEntry] = {}
        self.ttl = ttl
        self.clock = clock

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry and (self.clock() - entry.stored_at < self.ttl):
            logger.debug("[CACHE] HIT %s", key)
            return entry.value

        logger.debug("[CACHE] MISS %s", key)
        self._entries.pop(key, None)
        return None

    def set(self, key: str, value: Any) -> None:
        logger.debug("[CACHE] SET %s", key)
        self._entries[key] = CacheEntry(value=value, stored_at=self.clock())

    def invalidate(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            logger.debug("[CACHE] INVALIDATED %s", key)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def _addr(address: str) -> str:
    return address.lower()


def price_key(asset_id: str) -> str:
    return "eth_price" if asset_id == "ethereum" else f"price_{asset_id}"


def history_key(address: str, chain_id: str) -> str:
    return f"tx_{_addr(address)}_{chain_id}"


def balance_key(address: str, chain_id: str) -> str:
    return f"balance_{_addr(address)}_{chain_id}"


def chart_key(address: str, period: str, chain_id: str) -> str:
    return f"chart_{_addr(address)}_{period}_{chain_id}"


def profit_key(address: str, chain_id: str) -> str:
    return f"profit_{_addr(address)}_{chain_id}"
