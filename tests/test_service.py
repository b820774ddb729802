from dashboard.core.cache import TimedCache
from dashboard.core.service import DashboardService


def test_injected_empty_cache_is_shared(settings, cache, clock):
    assert len(cache) == 0

    svc = DashboardService(settings, cache=cache)

    assert svc.cache is cache
    for part in (svc.prices, svc.history, svc.portfolio, svc.charts, svc.submitter):
        assert part.cache is cache
    assert svc.charts.clock is clock


def test_default_cache_is_created(settings):
    assert isinstance(DashboardService(settings).cache, TimedCache)
