"""FastAPI server for the signal API."""

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from config.settings import get_settings

from . import routes
from .routes import limiter, router


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info("signal_api_starting")
    db = routes.get_db()

    yield

    logger.info("signal_api_stopping")
    db.close()


app = FastAPI(
    title="Swing Signal Desk",
    description="Crypto swing signals with cron trigger and AI commentary",
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.include_router(router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


def main():
    """Run the API server."""
    settings = get_settings()

    logger.info(
        "starting_signal_api",
        host=settings.dashboard_host,
        port=settings.dashboard_port,
    )

    uvicorn.run(
        app,
        host=settings.dashboard_host,
        port=settings.dashboard_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
