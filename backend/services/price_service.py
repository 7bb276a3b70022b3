"""Reference price oracle backed by public spot-price APIs."""

import logging
from collections import deque
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Protocol, Sequence
from urllib.parse import urlparse

import httpx

from config import settings
from utils.errors import PriceUnavailable
from utils.time_utils import Clock, ensure_utc, utcnow

logger = logging.getLogger(__name__)


class PriceOracle(Protocol):
    """Source of the reference price used to open and settle rounds."""

    async def current_price(self) -> Decimal:
        ...

    async def price_near(self, moment: datetime) -> Decimal:
        ...


def extract_price(url: str, data: Any) -> Decimal:
    """
    Pull the USD spot price out of a source-specific JSON payload.

    Raises:
        ValueError: payload has no usable price
    """
    host = urlparse(url).netloc
    try:
        if "coinbase" in host:
            raw = data["data"]["amount"]
        elif "kraken" in host:
            ticker = next(iter(data["result"].values()))
            raw = ticker["c"][0]
        elif "coingecko" in host:
            raw = data["bitcoin"]["usd"]
        elif "binance" in host:
            raw = data["price"]
        elif "bitstamp" in host:
            raw = data["last"]
        elif "blockchain.info" in host:
            raw = data["USD"]["last"]
        else:
            raw = data["price"]
        price = Decimal(str(raw))
    except (KeyError, IndexError, TypeError, StopIteration, InvalidOperation) as e:
        raise ValueError(f"Unrecognised price payload from {host}: {e}") from e

    if not price.is_finite() or price <= 0:
        raise ValueError(f"Invalid price {price} from {host}")
    return price


class HttpPriceOracle:
    """
    Polls an ordered list of spot-price endpoints, falling back on failure.

    Keeps a bounded in-memory history so a transition that runs late can be
    priced at (approximately) the moment it was due.
    """

    def __init__(
        self,
        sources: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        cache_ttl: Optional[float] = None,
        max_age: Optional[float] = None,
        history_size: Optional[int] = None,
        clock: Clock = utcnow,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.sources = list(sources if sources is not None else settings.price_sources)
        self.timeout = timeout if timeout is not None else settings.price_timeout_seconds
        self.cache_ttl = timedelta(
            seconds=cache_ttl if cache_ttl is not None else settings.price_cache_ttl_seconds
        )
        self.max_age = timedelta(
            seconds=max_age if max_age is not None else settings.price_max_age_seconds
        )
        self.clock = clock
        self.transport = transport
        self._history: deque[tuple[datetime, Decimal]] = deque(
            maxlen=history_size or settings.price_history_size
        )

    @property
    def latest(self) -> Optional[tuple[datetime, Decimal]]:
        """Most recent (timestamp, price) sample, if any."""
        return self._history[-1] if self._history else None

    def history(self) -> list[tuple[datetime, Decimal]]:
        return list(self._history)

    def record(self, price: Decimal, at: Optional[datetime] = None) -> None:
        """Append a sample to the history."""
        self._history.append((ensure_utc(at) if at else self.clock(), price))

    async def fetch_price(self) -> Decimal:
        """
        Query each source in order until one answers.

        Raises:
            PriceUnavailable: every source failed
        """
        errors = []
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers={"Accept": "application/json"},
        ) as client:
            for url in self.sources:
                try:
                    response = await client.get(url)
                    response.raise_for_status()
                    price = extract_price(url, response.json())
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning(f"Price source {url} failed: {e}")
                    errors.append(f"{urlparse(url).netloc}: {e}")
                    continue

                self.record(price)
                logger.debug(f"Fetched price {price} from {url}")
                return price

        raise PriceUnavailable(f"All price sources failed ({'; '.join(errors)})")

    async def current_price(self) -> Decimal:
        """
        Latest price, served from cache while fresh.

        Falls back to the last sample when every source fails, as long as it
        is younger than the configured maximum age.
        """
        now = self.clock()
        latest = self.latest
        if latest and now - latest[0] <= self.cache_ttl:
            return latest[1]

        try:
            return await self.fetch_price()
        except PriceUnavailable:
            if latest and now - latest[0] <= self.max_age:
                logger.warning(
                    f"Serving cached price {latest[1]} "
                    f"({(now - latest[0]).total_seconds():.0f}s old)"
                )
                return latest[1]
            raise

    async def price_near(self, moment: datetime) -> Decimal:
        """
        Best-effort historical price for ``moment``.

        Returns the closest recorded sample within the maximum age of
        ``moment``; when no such sample exists (e.g. after a restart) the
        current price is used instead.
        """
        moment = ensure_utc(moment)
        if self._history:
            at, price = min(self._history, key=lambda s: abs(s[0] - moment))
            if abs(at - moment) <= self.max_age:
                return price

        logger.warning(f"No price sample near {moment.isoformat()}, using current price")
        return await self.current_price()


# Singleton instance
price_oracle = HttpPriceOracle()
