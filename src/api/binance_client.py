"""
Binance public market data client.

Only unauthenticated endpoints are used: the 24h ticker provides the
current price snapshot the signal engine scores against.
"""

from typing import Optional

import requests
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.api.cache import MarketDataCache
from src.strategy.models import CoinPrice

logger = structlog.get_logger(__name__)

BASE_URL = "https://api.binance.com/api/v3"
QUOTE_ASSET = "USDT"


class BinanceAPIError(Exception):
    """Non-retryable error response from Binance (bad symbol, etc.)."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Binance API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def symbol_to_pair(symbol: str) -> str:
    """Coin symbol to its USDT trading pair ("btc" -> "BTCUSDT")."""
    symbol = symbol.strip().upper()
    if symbol.endswith(QUOTE_ASSET) and symbol != QUOTE_ASSET:
        return symbol
    return f"{symbol}{QUOTE_ASSET}"


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


class BinanceClient:
    """
    Binance REST client for price snapshots.

    Features:
    - Automatic retry with exponential backoff on network errors
    - Short-lived ticker cache with stale fallback
    """

    RETRY_EXCEPTIONS = (
        ConnectionError,
        TimeoutError,
        requests.exceptions.ConnectionError,
        requests.exceptions.Timeout,
    )

    def __init__(
        self,
        base_url: str = BASE_URL,
        cache: Optional[MarketDataCache] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize Binance client.

        Args:
            base_url: REST base URL (including /api/v3)
            cache: Ticker cache (defaults to a 1 second TTL)
            session: Optional pre-configured requests session
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.cache = cache or MarketDataCache(ttl_seconds=1.0)
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, path: str, params: Optional[dict] = None) -> dict:
        """Make a public GET request."""
        response = self.session.get(
            f"{self.base_url}{path}",
            params=params,
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )

        if response.status_code != 200:
            try:
                message = response.json().get("msg", response.text)
            except ValueError:
                message = response.text
            logger.error("binance_request_failed", path=path, status=response.status_code, error=message)
            raise BinanceAPIError(response.status_code, message)

        return response.json()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type(RETRY_EXCEPTIONS),
        reraise=True,
    )
    def _fetch_ticker(self, pair: str) -> dict:
        return self._request("/ticker/24hr", params={"symbol": pair})

    def get_ticker_24hr(self, symbol: str) -> dict:
        """
        Get 24h ticker statistics for a coin.

        Args:
            symbol: Coin symbol or pair (e.g., "btc" or "BTCUSDT")

        Returns:
            Raw ticker payload
        """
        pair = symbol_to_pair(symbol)
        return self.cache.get_or_fetch(f"ticker:{pair}", lambda: self._fetch_ticker(pair))

    def get_coin_price(self, symbol: str, coin_id: Optional[str] = None) -> CoinPrice:
        """
        Get the current price snapshot for a coin.

        Args:
            symbol: Coin symbol (e.g., "BTC")
            coin_id: Identifier to carry on the snapshot (defaults to lowercase symbol)

        Returns:
            CoinPrice built from the 24h ticker

        Raises:
            BinanceAPIError: On an error response
            ValueError: If the ticker has no usable price
        """
        ticker = self.get_ticker_24hr(symbol)
        price = _optional_float(ticker.get("lastPrice"))
        if price is None or price <= 0:
            raise ValueError(f"No valid price in ticker for {symbol_to_pair(symbol)}")

        base = symbol.strip().upper()
        if base.endswith(QUOTE_ASSET) and base != QUOTE_ASSET:
            base = base[: -len(QUOTE_ASSET)]

        return CoinPrice(
            id=coin_id or base.lower(),
            symbol=base,
            name=base,
            current_price=price,
            high_24h=_optional_float(ticker.get("highPrice")),
            low_24h=_optional_float(ticker.get("lowPrice")),
            volume_24h=_optional_float(ticker.get("quoteVolume")),
            price_change_percent_24h=_optional_float(ticker.get("priceChangePercent")),
        )
