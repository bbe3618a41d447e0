"""Ladderwatch — FastAPI Application Entry Point.

Daily WoW character progression poller, leaderboard and Telegram digest.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ladderwatch.config import settings
from ladderwatch.database import init_db, test_connection, db_url
from ladderwatch.scheduler.jobs import start_scheduler, stop_scheduler
from ladderwatch.api.jobs_routes import router as jobs_router
from ladderwatch.api.leaderboard_routes import router as leaderboard_router
from ladderwatch.core.exceptions import LadderwatchError
from ladderwatch.core.logging import get_logger

logger = get_logger("main")


IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 Ladderwatch starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    # Test connection first
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — endpoints will fail")
    # Serverless deployments trigger the daily job through /api/jobs/daily
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("Ladderwatch shut down")


app = FastAPI(
    title="Ladderwatch",
    description="Poll tracked WoW characters daily, score and rank their progression, and post a Telegram digest.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(leaderboard_router)
app.include_router(jobs_router)


@app.exception_handler(LadderwatchError)
async def ladderwatch_error_handler(request: Request, exc: LadderwatchError):
    """Named application errors become {ok: false, error: {code, message}}."""
    logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    error = {"code": exc.code, "message": exc.message, "retryable": exc.retryable}
    if exc.details:
        error["details"] = exc.details
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": error},
        headers={"Cache-Control": "no-store"},
    )


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "ladderwatch",
        "version": "1.0.0",
    }


@app.get("/debug/db", tags=["System"])
async def debug_db():
    """Debug endpoint — check database connectivity."""
    from ladderwatch.database import _mask_url, backend_name

    error = None
    connected = False
    try:
        connected = test_connection()
    except Exception as e:
        error = str(e)

    return {
        "connected": connected,
        "backend": backend_name(db_url),
        "url": _mask_url(db_url),
        "environment": "serverless" if IS_SERVERLESS else "local",
        "error": error,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ladderwatch.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level=settings.log_level.lower(),
    )
