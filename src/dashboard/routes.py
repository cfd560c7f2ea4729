"""REST API routes for signals, cron trigger and AI analysis."""

import asyncio
import secrets
from datetime import timedelta
from functools import lru_cache
from typing import Optional

import structlog
from fastapi import APIRouter, Header, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from config.settings import get_settings
from src.ai.market_analyzer import (
    AnalysisAuthError,
    AnalysisError,
    AnalysisQuotaError,
    MarketAnalyzer,
    build_analysis_request,
)
from src.api.binance_client import BinanceClient
from src.api.cache import MarketDataCache
from src.daemon.signal_job import JobConfig, SignalJob
from src.notifications.email import EmailNotifier
from src.state.database import Database
from src.version import __version__

from .models import AnalyzeRequest, AnalyzeResponse, NotificationRecord, StoredSignalInfo

logger = structlog.get_logger(__name__)

router = APIRouter()

# Rate limiter instance:
# - /api/signals: 30/min
# - /api/cron/calculate-signals: 6/min (external scheduler, one call per run)
# - /api/analyze: 5/min (paid model call)
limiter = Limiter(key_func=get_remote_address)


@lru_cache(maxsize=1)
def get_db() -> Database:
    """Get singleton database instance.

    The instance is disposed in the server lifespan handler on shutdown.
    """
    settings = get_settings()
    return Database(settings.database_path)


@lru_cache(maxsize=1)
def get_price_client() -> BinanceClient:
    settings = get_settings()
    return BinanceClient(
        base_url=settings.binance_base_url,
        cache=MarketDataCache(ttl_seconds=settings.price_cache_seconds),
    )


@lru_cache(maxsize=1)
def get_signal_job() -> SignalJob:
    """Singleton job so overlapping cron calls hit the same run guard."""
    settings = get_settings()
    db = get_db()
    notifier = None
    if settings.email_configured:
        notifier = EmailNotifier(
            api_key=settings.resend_api_key.get_secret_value(),
            from_email=settings.alert_from_email,
            enabled=settings.email_notifications_enabled,
            db=db,
        )
    return SignalJob(
        db=db,
        price_source=get_price_client(),
        notifier=notifier,
        signal_config=settings.signal_config(),
        config=JobConfig(
            max_workers=settings.signal_job_max_workers,
            alert_recipients=list(settings.alert_recipients),
            indicator_max_age=timedelta(seconds=settings.indicator_max_age_seconds),
        ),
    )


def get_analyzer() -> Optional[MarketAnalyzer]:
    settings = get_settings()
    if not settings.gemini_api_key:
        return None
    return MarketAnalyzer(
        api_key=settings.gemini_api_key.get_secret_value(),
        model=settings.gemini_model,
    )


def _check_cron_auth(authorization: Optional[str]) -> None:
    """Require 'Bearer <CRON_SECRET>' when a secret is configured."""
    settings = get_settings()
    if not settings.cron_secret:
        return
    expected = f"Bearer {settings.cron_secret.get_secret_value()}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        logger.warning("cron_unauthorized")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/api/version")
async def get_version() -> dict:
    return {"version": __version__}


@router.get("/api/signals")
@limiter.limit("30/minute")
async def get_signals(
    request: Request,
    min_score: int = Query(default=50, ge=0, le=100),
    limit: int = Query(default=100, ge=1, le=500),
) -> list[StoredSignalInfo]:
    """Latest visible signal per coin, highest score first."""
    db = get_db()
    records = db.get_signals_by_score(min_score=min_score, limit=limit)
    return [StoredSignalInfo.from_record(r) for r in records]


@router.get("/api/signals/latest")
@limiter.limit("30/minute")
async def get_latest_signals(request: Request) -> list[StoredSignalInfo]:
    """Latest signal for every coin, including WAIT and hidden ones."""
    db = get_db()
    return [StoredSignalInfo.from_record(r) for r in db.get_all_latest_signals()]


@router.get("/api/signals/{symbol}")
@limiter.limit("30/minute")
async def get_signal(request: Request, symbol: str) -> StoredSignalInfo:
    """Latest stored signal for one coin."""
    db = get_db()
    record = db.get_latest_signal(symbol)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No signal for {symbol.upper()}")
    return StoredSignalInfo.from_record(record)


@router.get("/api/notifications")
@limiter.limit("10/minute")
async def get_notifications(
    request: Request,
    limit: int = Query(default=50, ge=1, le=200),
) -> list[NotificationRecord]:
    """Get recently delivered alerts."""
    db = get_db()
    return [
        NotificationRecord(
            id=n.id,
            type=n.type,
            title=n.title,
            message=n.message,
            coin_symbol=n.coin_symbol,
            created_at=n.created_at.isoformat() if n.created_at else "",
        )
        for n in db.get_recent_notifications(limit=limit)
    ]


@router.get("/api/cron/calculate-signals")
@limiter.limit("6/minute")
async def calculate_signals(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> dict:
    """Run the signal job for every coin (called by an external scheduler)."""
    _check_cron_auth(authorization)

    job = get_signal_job()
    logger.info("cron_signal_job_triggered")
    summary = await asyncio.to_thread(job.run)

    if summary.skipped:
        return {"success": False, "message": "Signal job already running", **summary.to_dict()}
    return {"success": True, "message": "Signal calculation completed", **summary.to_dict()}


@router.post("/api/analyze")
@limiter.limit("5/minute")
async def analyze(request: Request, body: AnalyzeRequest) -> AnalyzeResponse:
    """Generate an AI analysis for a coin from its cached indicators."""
    analyzer = get_analyzer()
    if analyzer is None:
        raise HTTPException(status_code=503, detail="AI analysis is not configured")

    db = get_db()
    indicators, _ = db.get_indicators(body.symbol, body.strategy)
    if indicators is None:
        raise HTTPException(
            status_code=404,
            detail=f"No {body.strategy.value} indicators for {body.symbol.upper()}",
        )

    try:
        coin = await asyncio.to_thread(
            get_price_client().get_coin_price, body.symbol, indicators.coin_id
        )
    except Exception as e:
        logger.error("analyze_price_failed", symbol=body.symbol, error=str(e))
        raise HTTPException(status_code=502, detail="Price data unavailable")

    try:
        text = await analyzer.generate_analysis(build_analysis_request(coin, indicators))
    except AnalysisQuotaError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except AnalysisAuthError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except AnalysisError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return AnalyzeResponse(symbol=coin.symbol, strategy=body.strategy, analysis=text)
