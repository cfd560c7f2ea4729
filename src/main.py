"""
Swing Signal Desk - Main Entry Point

Scores cached 4-hour indicators for every coin into LONG/SHORT/WAIT
signals with a 0-100 confidence score:
- Trend gate (MA alignment + ADX), momentum (RSI), structure (Fibonacci), risk (ATR)
- Signal history with change detection
- Email alerts for new actionable signals

Usage:
    python -m src.main            # run one signal calculation pass
    python -m src.main serve      # start the HTTP API (cron trigger + signal routes)

Configuration:
    Copy .env.example to .env and configure your settings.
"""

import argparse
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional, Sequence

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.logging_config import setup_logging, get_logger
from config.settings import get_settings
from src.api.binance_client import BinanceClient
from src.api.cache import MarketDataCache
from src.daemon.signal_job import JobConfig, SignalJob
from src.notifications.email import EmailNotifier
from src.state.database import Database
from src.version import __version__


def build_job(settings) -> SignalJob:
    """Wire the signal job from settings."""
    db = Database(settings.database_path)
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
        price_source=BinanceClient(
            base_url=settings.binance_base_url,
            cache=MarketDataCache(ttl_seconds=settings.price_cache_seconds),
        ),
        notifier=notifier,
        signal_config=settings.signal_config(),
        config=JobConfig(
            max_workers=settings.signal_job_max_workers,
            alert_recipients=list(settings.alert_recipients),
            indicator_max_age=timedelta(seconds=settings.indicator_max_age_seconds),
        ),
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(prog="signal-desk", description="Swing signal engine")
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=("run", "serve"),
        help="run: one calculation pass (default); serve: start the HTTP API",
    )
    args = parser.parse_args(argv)

    try:
        settings = get_settings()

        setup_logging(
            log_level=settings.log_level,
            log_file=settings.log_file,
            json_format=settings.log_json,
        )

        logger = get_logger(__name__)
        config = settings.signal_config()

        logger.info(
            "starting_signal_desk",
            version=__version__,
            command=args.command,
            action_threshold=config.thresholds.action,
            watchlist_threshold=config.thresholds.watchlist,
        )

        print("\n" + "=" * 50)
        print(f"  Swing Signal Desk v{__version__}")
        print("=" * 50)
        print(f"  Command: {args.command}")
        print(f"  Action Threshold: {config.thresholds.action:g}")
        print(f"  Watchlist Threshold: {config.thresholds.watchlist:g}")
        print(f"  Email Alerts: {'on' if settings.email_configured else 'off'}")
        print("=" * 50)

        if args.command == "serve":
            from src.dashboard.server import main as serve
            serve()
            return 0

        job = build_job(settings)
        try:
            summary = job.run()
        finally:
            if job.notifier is not None:
                job.notifier.close()
            job.db.close()
        print(
            f"\nProcessed {summary.processed} coins: {summary.successful} ok, "
            f"{summary.failed} failed, {summary.alerts_sent} alerts sent"
        )
        return 0 if summary.failed == 0 else 1

    except KeyboardInterrupt:
        print("\n\nShutdown requested. Exiting...")
        return 0

    except Exception as e:
        print(f"\nFatal error: {e}", file=sys.stderr)

        # Try to get logger for error logging
        try:
            logger = get_logger(__name__)
            logger.critical("fatal_startup_error", error=str(e))
        except Exception:
            pass

        return 1


if __name__ == "__main__":
    sys.exit(main())
