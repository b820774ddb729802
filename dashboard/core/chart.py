import logging
import time
from enum import Enum
from typing import Callable, Iterable

from dashboard.core.cache import TimedCache, chart_key
from dashboard.core.config import Settings
from dashboard.core.etherscan import EtherscanClient
from dashboard.core.models import IN, TOKEN, ChartPoint, Transfer

logger = logging.getLogger(__name__)

HOUR = 60 * 60
DAY = 24 * HOUR
PLACEHOLDER_VALUE = 1000.0


class ChartPeriod(str, Enum):
    ONE_HOUR = "1H"
    SIX_HOURS = "6H"
    ONE_DAY = "1D"
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    ALL = "All"


# period -> (lookback seconds, intervals)
PERIODS: dict[str, tuple[int, int]] = {
    ChartPeriod.ONE_HOUR.value: (HOUR, 12),
    ChartPeriod.SIX_HOURS.value: (6 * HOUR, 24),
    ChartPeriod.ONE_DAY.value: (DAY, 48),
    ChartPeriod.ONE_WEEK.value: (7 * DAY, 50),
    ChartPeriod.ONE_MONTH.value: (30 * DAY, 50),
    ChartPeriod.ALL.value: (365 * DAY, 50),
}
DEFAULT_PERIOD = ChartPeriod.ONE_DAY.value


def resolve_period(period) -> tuple[str, int, int]:
    name = period.value if isinstance(period, ChartPeriod) else str(period)
    if name not in PERIODS:
        raise ValueError(f"Unknown chart period: {period}")
    time_range, intervals = PERIODS[name]
    return name, time_range, intervals


def boundaries(now: float, time_range: int, intervals: int) -> list[float]:
    """intervals + 1 evenly spaced timestamps, oldest first, last one is now."""
    step = time_range / intervals
    return [now - i * step for i in range(intervals, -1, -1)]


def placeholder_series(period, now: float) -> list[ChartPoint]:
    _, time_range, intervals = resolve_period(period)
    return [
        ChartPoint(value=PLACEHOLDER_VALUE, timestamp=ts)
        for ts in boundaries(now, time_range, intervals)
    ]


def bucketize(
    transfers: Iterable[Transfer], period, now: float
) -> list[ChartPoint]:
    """
    Replays every token transfer up to each bucket boundary.
    Running balance is clamped at zero.
    """
    _, time_range, intervals = resolve_period(period)
    token_txs = [t for t in transfers if t.asset == TOKEN]

    points = []
    for boundary in boundaries(now, time_range, intervals):
        running = 0.0
        for tx in token_txs:
            if tx.timestamp <= boundary:
                if tx.direction == IN:
                    running += tx.token_amount
                else:
                    running -= tx.token_amount
        points.append(ChartPoint(value=max(0.0, running), timestamp=boundary))
    return points


class ChartBuilder:
    def __init__(
        self,
        cache: TimedCache,
        settings: Settings,
        history: EtherscanClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.settings = settings
        self.history = history
        self.clock = clock

    async def get_chart_series(self, address: str, period=DEFAULT_PERIOD) -> list[ChartPoint]:
        name, _, intervals = resolve_period(period)
        key = chart_key(address, name, self.settings.chain_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("[CHART] Returning cached %s chart for %s", name, address)
            return cached

        transfers = await self.history.get_transfer_history(address)
        token_txs = [t for t in transfers if t.asset == TOKEN]
        now = self.clock()

        if not token_txs:
            # Not cached so real data shows up as soon as the explorer has it
            logger.warning("[CHART] No token transfers for %s, placeholder chart", address)
            return placeholder_series(name, now)

        points = bucketize(token_txs, name, now)
        self.cache.set(key, points)
        logger.info("[CHART] Generated %d points (%d intervals)", len(points), intervals)
        return points
