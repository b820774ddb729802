from dashboard.core.cache import (
    FRESHNESS_WINDOW,
    TimedCache,
    balance_key,
    chart_key,
    history_key,
    price_key,
)


def test_get_after_set_returns_value(cache):
    cache.set("balance_0xabc_1", {"balance": 1})
    assert cache.get("balance_0xabc_1") == {"balance": 1}


def test_missing_key_is_absent(cache):
    assert cache.get("nope") is None


def test_entry_fresh_just_inside_window(cache, clock):
    cache.set("k", 42)
    clock.advance(FRESHNESS_WINDOW - 0.1)
    assert cache.get("k") == 42


def test_entry_expires_after_window_and_is_dropped(cache, clock):
    cache.set("k", 42)
    clock.advance(FRESHNESS_WINDOW)
    assert cache.get("k") is None
    assert "k" not in cache
    assert len(cache) == 0


def test_set_replaces_value_and_timestamp(cache, clock):
    cache.set("k", 1)
    clock.advance(50)
    cache.set("k", 2)
    clock.advance(50)
    assert cache.get("k") == 2


def test_invalidate(cache):
    cache.set("k", 1)
    cache.invalidate("k")
    assert cache.get("k") is None
    # unknown keys are fine
    cache.invalidate("never-set")


def test_custom_ttl(clock):
    short = TimedCache(ttl=5, clock=clock)
    short.set("k", "v")
    clock.advance(5)
    assert short.get("k") is None


def test_keys_ignore_address_case():
    upper = "0xABCDEF0000000000000000000000000000000001"
    assert balance_key(upper, "1") == balance_key(upper.lower(), "1")
    assert history_key(upper, "5") == f"tx_{upper.lower()}_5"
    assert chart_key(upper, "1D", "1") == f"chart_{upper.lower()}_1D_1"
    assert price_key("ethereum") == "eth_price"
