import asyncio

import pytest

from conftest import NOW, OTHER, WALLET, native_row, token_row
from dashboard.core.cache import chart_key
from dashboard.core.chart import (
    PERIODS,
    PLACEHOLDER_VALUE,
    ChartPeriod,
    bucketize,
    placeholder_series,
)
from dashboard.core.models import IN, OUT, TOKEN, Transfer

HOUR = 3600


def token_transfer(amount, direction, ts):
    return Transfer(
        hash=f"0x{ts}",
        from_address=OTHER if direction == IN else WALLET,
        to_address=WALLET if direction == IN else OTHER,
        native_amount=0.0,
        token_amount=amount,
        timestamp=ts,
        direction=direction,
        asset=TOKEN,
    )


def test_empty_history_gives_flat_placeholder_for_one_day(service):
    points = asyncio.run(service.get_chart_series(WALLET, "1D"))

    assert len(points) == 49
    assert all(p.value == PLACEHOLDER_VALUE for p in points)
    assert points[0].timestamp == NOW - 24 * HOUR
    assert points[-1].timestamp == NOW
    gaps = {round(b.timestamp - a.timestamp, 6) for a, b in zip(points, points[1:])}
    assert gaps == {1800.0}


def test_placeholder_is_not_cached(service, cache):
    asyncio.run(service.get_chart_series(WALLET, "1D"))
    assert chart_key(WALLET, "1D", "1") not in cache


@pytest.mark.parametrize("period", list(PERIODS))
def test_point_count_and_ordering(period):
    _, intervals = PERIODS[period]
    transfers = [
        token_transfer(100, IN, NOW - 2 * HOUR),
        token_transfer(250, OUT, NOW - HOUR),
        token_transfer(40, IN, NOW - 10),
    ]

    points = bucketize(transfers, period, NOW)

    assert len(points) == intervals + 1
    assert all(a.timestamp < b.timestamp for a, b in zip(points, points[1:]))
    assert all(p.value >= 0 for p in points)
    assert len(placeholder_series(period, NOW)) == intervals + 1


def test_running_balance_replays_transfers():
    transfers = [
        token_transfer(100, IN, NOW - 5 * HOUR),
        token_transfer(30, OUT, NOW - 2 * HOUR),
    ]

    points = bucketize(transfers, ChartPeriod.SIX_HOURS, NOW)

    by_ts = {p.timestamp: p.value for p in points}
    assert by_ts[NOW - 6 * HOUR] == 0.0
    assert by_ts[NOW - 5 * HOUR] == 100.0
    assert by_ts[NOW - 2.5 * HOUR] == 100.0
    assert by_ts[NOW - 2 * HOUR] == 70.0
    assert points[-1].value == 70.0


def test_running_balance_is_clamped_at_zero():
    transfers = [
        token_transfer(50, OUT, NOW - 50 * 60),
        token_transfer(20, IN, NOW - 10 * 60),
    ]
    points = bucketize(transfers, "1H", NOW)
    assert points[-1].value == 0.0
    assert min(p.value for p in points) == 0.0


def test_unknown_period():
    with pytest.raises(ValueError):
        bucketize([], "2D", NOW)


def test_chart_from_history_is_cached(service, upstream, cache):
    upstream.native_rows = [native_row("0xn1", OTHER, WALLET, 10**18, NOW - 60)]
    upstream.token_rows = [token_row("0xt1", OTHER, WALLET, 25, NOW - 30 * 60)]

    points = asyncio.run(service.get_chart_series(WALLET, ChartPeriod.ONE_HOUR))

    assert len(points) == 13
    assert points[0].value == 0.0
    assert points[-1].value == 25.0
    assert cache.get(chart_key(WALLET, "1H", "1")) == points

    requests = len(upstream.requests)
    assert asyncio.run(service.get_chart_series(WALLET, "1H")) == points
    assert len(upstream.requests) == requests
