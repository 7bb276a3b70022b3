"""
backend/tests/test_price_service.py

Purpose:
    HTTP price oracle with a mocked transport: payload parsing, source
    fallback, caching, stale fallback and nearest-sample lookups.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import httpx
import pytest

from conftest import T0
from services.price_service import HttpPriceOracle, extract_price
from utils.errors import PriceUnavailable

COINBASE = "https://api.coinbase.com/v2/prices/BTC-USD/spot"
KRAKEN = "https://api.kraken.com/0/public/Ticker?pair=XBTUSD"


class FakeExchange:
    """Serves canned payloads per host and counts requests."""

    def __init__(self):
        self.requests: list[str] = []
        self.down: set[str] = set()
        self.coinbase_price = "50000.12"
        self.kraken_price = "50001.50"

    def handler(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.requests.append(host)
        if host in self.down:
            return httpx.Response(503, json={"error": "unavailable"})
        if "coinbase" in host:
            return httpx.Response(200, json={"data": {"amount": self.coinbase_price}})
        if "kraken" in host:
            return httpx.Response(
                200, json={"result": {"XXBTZUSD": {"c": [self.kraken_price, "0.01"]}}}
            )
        return httpx.Response(404)


@pytest.fixture
def exchange():
    return FakeExchange()


@pytest.fixture
def price_oracle(exchange, clock):
    return HttpPriceOracle(
        sources=[COINBASE, KRAKEN],
        timeout=1,
        cache_ttl=5,
        max_age=60,
        history_size=10,
        clock=clock,
        transport=httpx.MockTransport(exchange.handler),
    )


def test_extract_price_formats():
    assert extract_price(COINBASE, {"data": {"amount": "64000.5"}}) == Decimal("64000.5")
    assert extract_price(KRAKEN, {"result": {"XXBTZUSD": {"c": ["64001.1", "1"]}}}) == Decimal("64001.1")
    assert extract_price(
        "https://api.coingecko.com/api/v3/simple/price", {"bitcoin": {"usd": 64002}}
    ) == Decimal("64002")
    assert extract_price(
        "https://api.binance.com/api/v3/ticker/price", {"price": "64003.00"}
    ) == Decimal("64003.00")
    assert extract_price(
        "https://www.bitstamp.net/api/v2/ticker/btcusd/", {"last": "64004"}
    ) == Decimal("64004")


@pytest.mark.parametrize("payload", [{}, {"data": {}}, {"data": {"amount": "-1"}}, {"data": {"amount": "abc"}}])
def test_extract_price_rejects_bad_payloads(payload):
    with pytest.raises(ValueError):
        extract_price(COINBASE, payload)


@pytest.mark.asyncio
async def test_fetch_uses_first_healthy_source(price_oracle, exchange):
    price = await price_oracle.fetch_price()

    assert price == Decimal("50000.12")
    assert exchange.requests == ["api.coinbase.com"]
    assert price_oracle.latest == (T0, Decimal("50000.12"))


@pytest.mark.asyncio
async def test_fetch_falls_back_to_next_source(price_oracle, exchange):
    exchange.down.add("api.coinbase.com")

    price = await price_oracle.fetch_price()

    assert price == Decimal("50001.50")
    assert exchange.requests == ["api.coinbase.com", "api.kraken.com"]


@pytest.mark.asyncio
async def test_fetch_raises_when_every_source_fails(price_oracle, exchange):
    exchange.down.update({"api.coinbase.com", "api.kraken.com"})

    with pytest.raises(PriceUnavailable):
        await price_oracle.fetch_price()


@pytest.mark.asyncio
async def test_current_price_is_cached(price_oracle, exchange, clock):
    assert await price_oracle.current_price() == Decimal("50000.12")
    exchange.coinbase_price = "50010.00"

    clock.advance(3)
    assert await price_oracle.current_price() == Decimal("50000.12")
    assert len(exchange.requests) == 1

    clock.advance(3)
    assert await price_oracle.current_price() == Decimal("50010.00")
    assert len(exchange.requests) == 2


@pytest.mark.asyncio
async def test_current_price_serves_recent_sample_during_outage(price_oracle, exchange, clock):
    await price_oracle.current_price()
    exchange.down.update({"api.coinbase.com", "api.kraken.com"})

    clock.advance(30)
    assert await price_oracle.current_price() == Decimal("50000.12")

    clock.advance(60)
    with pytest.raises(PriceUnavailable):
        await price_oracle.current_price()


@pytest.mark.asyncio
async def test_price_near_picks_closest_sample(price_oracle, exchange):
    price_oracle.record(Decimal("100"), T0)
    price_oracle.record(Decimal("110"), T0 + timedelta(seconds=30))
    price_oracle.record(Decimal("120"), T0 + timedelta(seconds=60))

    assert await price_oracle.price_near(T0 + timedelta(seconds=25)) == Decimal("110")
    assert await price_oracle.price_near(T0 + timedelta(seconds=50)) == Decimal("120")
    assert exchange.requests == []


@pytest.mark.asyncio
async def test_price_near_without_close_sample_uses_current_price(price_oracle, exchange, clock):
    price_oracle.record(Decimal("100"), T0 - timedelta(hours=1))

    price = await price_oracle.price_near(T0)

    assert price == Decimal("50000.12")
    assert exchange.requests == ["api.coinbase.com"]


def test_history_is_bounded(price_oracle):
    for i in range(15):
        price_oracle.record(Decimal(i), T0 + timedelta(seconds=i))

    history = price_oracle.history()
    assert len(history) == 10
    assert history[0][1] == Decimal(5)
