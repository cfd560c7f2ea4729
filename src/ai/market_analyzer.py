"""
On-demand AI market commentary for a single coin.

Builds a strategy-specific analysis request from cached indicators and
asks Gemini for a short written analysis. Swing requests carry trend
indicators (MA, ADX, Fibonacci); scalp requests carry intraday levels
(VWAP, Bollinger Bands, pivots). Purely informational, independent of
the signal engine.
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

import httpx
import structlog

from src.strategy.models import (
    AnyIndicators,
    CoinPrice,
    ScalpIndicators,
    StrategyMode,
    SwingIndicators,
    is_number,
)

logger = structlog.get_logger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

DEFAULT_MODEL = "gemini-2.5-pro"


class AnalysisError(Exception):
    """Analysis could not be generated."""


class AnalysisQuotaError(AnalysisError):
    """Provider quota or rate limit reached (HTTP 429)."""


class AnalysisAuthError(AnalysisError):
    """API key missing or rejected (HTTP 401/403)."""


@dataclass(frozen=True)
class FibLevels:
    value: float
    trend: Optional[str]
    start_price: float
    end_price: float


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class PivotLevels:
    r3: float
    r2: float
    r1: float
    p: float
    s1: float
    s2: float
    s3: float


@dataclass(frozen=True)
class SwingAnalysisRequest:
    strategy: ClassVar[StrategyMode] = StrategyMode.SWING

    coin_name: str
    symbol: str
    price: float
    ma: Optional[float] = None
    atr: Optional[float] = None
    rsi: Optional[float] = None
    adx: Optional[float] = None
    fib: Optional[FibLevels] = None


@dataclass(frozen=True)
class ScalpAnalysisRequest:
    strategy: ClassVar[StrategyMode] = StrategyMode.SCALP

    coin_name: str
    symbol: str
    price: float
    atr: Optional[float] = None
    vwap: Optional[float] = None
    rsi: Optional[float] = None
    bbands: Optional[BollingerBands] = None
    pivot: Optional[PivotLevels] = None


AnalysisRequest = Union[SwingAnalysisRequest, ScalpAnalysisRequest]


def _opt(value: Optional[float]) -> Optional[float]:
    return value if is_number(value) else None


def _all_numbers(*values: Optional[float]) -> bool:
    return all(is_number(v) for v in values)


def build_analysis_request(coin: CoinPrice, indicators: AnyIndicators) -> AnalysisRequest:
    """Build the request variant matching the indicator record type."""
    name = coin.name or coin.symbol.upper()
    symbol = coin.symbol.upper()

    if isinstance(indicators, SwingIndicators):
        fib = None
        if _all_numbers(indicators.fib_value, indicators.fib_start_price, indicators.fib_end_price):
            fib = FibLevels(
                value=indicators.fib_value,
                trend=indicators.fib_trend,
                start_price=indicators.fib_start_price,
                end_price=indicators.fib_end_price,
            )
        return SwingAnalysisRequest(
            coin_name=name,
            symbol=symbol,
            price=coin.current_price,
            ma=_opt(indicators.ma if is_number(indicators.ma) else indicators.ma200),
            atr=_opt(indicators.atr),
            rsi=_opt(indicators.rsi),
            adx=_opt(indicators.adx),
            fib=fib,
        )

    if isinstance(indicators, ScalpIndicators):
        bbands = None
        if _all_numbers(indicators.bbands_upper, indicators.bbands_middle, indicators.bbands_lower):
            bbands = BollingerBands(
                upper=indicators.bbands_upper,
                middle=indicators.bbands_middle,
                lower=indicators.bbands_lower,
            )
        pivot = None
        pivot_values = (
            indicators.pivot_r3, indicators.pivot_r2, indicators.pivot_r1, indicators.pivot_p,
            indicators.pivot_s1, indicators.pivot_s2, indicators.pivot_s3,
        )
        if _all_numbers(*pivot_values):
            pivot = PivotLevels(*pivot_values)
        return ScalpAnalysisRequest(
            coin_name=name,
            symbol=symbol,
            price=coin.current_price,
            atr=_opt(indicators.atr),
            vwap=_opt(indicators.vwap),
            rsi=_opt(indicators.rsi),
            bbands=bbands,
            pivot=pivot,
        )

    raise TypeError(f"Unsupported indicator record: {type(indicators).__name__}")


def _build_swing_prompt(request: SwingAnalysisRequest) -> str:
    lines = [
        f"You are a crypto technical analyst. Write a SWING TRADE analysis for "
        f"{request.coin_name} ({request.symbol}).",
        "",
        "Price:",
        f"- Current price: ${request.price:.2f}",
        "",
        "Swing indicators (4h):",
    ]
    if request.ma is not None:
        lines.append(f"- Moving average: ${request.ma:.2f} (trend direction)")
    if request.atr is not None:
        lines.append(f"- ATR: {request.atr:.2f} (volatility, stop-loss and position sizing)")
    if request.fib is not None:
        lines.extend([
            "- Fibonacci retracement:",
            f"  * 0.618 level: ${request.fib.value:.2f}",
            f"  * Trend: {request.fib.trend or 'unknown'}",
            f"  * Swing start: ${request.fib.start_price:.2f}",
            f"  * Swing end: ${request.fib.end_price:.2f}",
        ])
    if request.rsi is not None:
        lines.append(f"- RSI: {request.rsi:.2f} (overbought above 70, oversold below 30)")
    if request.adx is not None:
        lines.append(f"- ADX: {request.adx:.2f} (above 25 strong trend, below 20 weak)")
    lines.extend([
        "",
        "Cover:",
        "1. Price versus moving average and trend direction",
        "2. Volatility and risk management based on ATR",
        "3. Support and resistance from the Fibonacci levels",
        "4. RSI interpretation",
        "5. Trend strength from ADX",
        "6. Medium-term entry and exit ideas",
        "",
        "Keep it between 200 and 300 words, professional and clear.",
    ])
    return "\n".join(lines)


def _build_scalp_prompt(request: ScalpAnalysisRequest) -> str:
    lines = [
        f"You are a crypto technical analyst. Write a SCALPING analysis for "
        f"{request.coin_name} ({request.symbol}).",
        "",
        "Price:",
        f"- Current price: ${request.price:.2f}",
        "",
        "Scalping indicators:",
    ]
    if request.atr is not None:
        lines.append(f"- ATR: {request.atr:.2f} (tight stop-loss placement)")
    if request.vwap is not None:
        lines.append(f"- VWAP: ${request.vwap:.2f} (price above is bullish, below is bearish)")
    if request.bbands is not None:
        lines.extend([
            "- Bollinger Bands:",
            f"  * Upper: ${request.bbands.upper:.2f}",
            f"  * Middle: ${request.bbands.middle:.2f}",
            f"  * Lower: ${request.bbands.lower:.2f}",
        ])
    if request.pivot is not None:
        p = request.pivot
        lines.extend([
            "- Pivot points:",
            f"  * Resistance: R3 ${p.r3:.2f}, R2 ${p.r2:.2f}, R1 ${p.r1:.2f}",
            f"  * Pivot: ${p.p:.2f}",
            f"  * Support: S1 ${p.s1:.2f}, S2 ${p.s2:.2f}, S3 ${p.s3:.2f}",
        ])
    if request.rsi is not None:
        lines.append(f"- RSI: {request.rsi:.2f} (short-term momentum)")
    lines.extend([
        "",
        "Cover:",
        "1. Volatility and stop-loss suggestions from ATR",
        "2. Price versus VWAP",
        "3. Bollinger Band position and squeeze risk",
        "4. Support and resistance from pivots",
        "5. RSI interpretation",
        "6. Short-term entry and exit ideas",
        "",
        "Keep it between 200 and 300 words, focused on fast practical decisions.",
    ])
    return "\n".join(lines)


def build_prompt(request: AnalysisRequest) -> str:
    """Deterministic prompt text for a request."""
    if isinstance(request, SwingAnalysisRequest):
        return _build_swing_prompt(request)
    return _build_scalp_prompt(request)


class MarketAnalyzer:
    """
    Gemini-backed market commentary.

    Errors are raised (not swallowed) so the API layer can map them to
    HTTP responses.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
    ):
        """
        Initialize market analyzer.

        Args:
            api_key: Gemini API key
            model: Gemini model name
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    async def generate_analysis(self, request: AnalysisRequest) -> str:
        """
        Generate a written analysis for the request.

        Returns:
            Analysis text

        Raises:
            AnalysisAuthError: Missing or rejected API key
            AnalysisQuotaError: Quota exceeded
            AnalysisError: Any other failure
        """
        if not self.api_key:
            raise AnalysisAuthError("Gemini API key is not configured")

        prompt = build_prompt(request)
        logger.debug(
            "market_analysis_request",
            model=self.model,
            symbol=request.symbol,
            strategy=request.strategy.value,
        )

        try:
            text = await self._call_api(prompt)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("market_analysis_failed", status=status, symbol=request.symbol)
            if status == 429:
                raise AnalysisQuotaError("API quota reached, try again in a few minutes") from e
            if status in (401, 403):
                raise AnalysisAuthError("Gemini API key was rejected") from e
            raise AnalysisError(f"Analysis request failed with status {status}") from e
        except httpx.HTTPError as e:
            logger.error("market_analysis_failed", error=str(e), symbol=request.symbol)
            raise AnalysisError(f"Analysis request failed: {e}") from e

        if not text:
            raise AnalysisError("Empty analysis returned")
        return text

    async def _call_api(self, prompt: str) -> str:
        """Call the Gemini generateContent endpoint."""
        request_body = {"contents": [{"parts": [{"text": prompt}]}]}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                GEMINI_API_URL.format(model=self.model),
                headers={
                    "x-goog-api-key": self.api_key,
                    "Content-Type": "application/json",
                },
                json=request_body,
            )

            response.raise_for_status()
            data = response.json()

        candidates = data.get("candidates", [])
        if not candidates:
            return ""
        parts = candidates[0].get("content", {}).get("parts", [])
        return "".join(part.get("text", "") for part in parts).strip()
