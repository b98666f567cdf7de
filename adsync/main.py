"""ADSYNC — FastAPI Application Entry Point.

Ad platform sync engine: pulls Meta campaign hierarchy, daily metrics and the
media catalog into the datastore.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adsync.database import backend_name, db_url, init_db, masked_url, test_connection
from adsync.scheduler.jobs import start_scheduler, stop_scheduler
from adsync.api.sync_routes import router as sync_router
from adsync.core.logging import get_logger

logger = get_logger("main")


IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 ADSYNC starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — sync endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("ADSYNC shut down")


app = FastAPI(
    title="ADSYNC",
    description="Ad platform sync engine — pull Meta hierarchy, daily ad metrics and media catalog, resolve attribution and video derivatives.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sync_router)


@app.get("/health", tags=["System"])
async def health_check():
    return {
        "status": "healthy",
        "service": "adsync",
        "version": "1.0.0",
    }


@app.get("/debug/db", tags=["System"])
async def debug_db():
    """Check database connectivity."""
    error = None
    connected = False
    try:
        connected = test_connection()
    except Exception as e:
        error = str(e)

    return {
        "connected": connected,
        "backend": backend_name(db_url),
        "url": masked_url(db_url),
        "environment": "serverless" if IS_SERVERLESS else "local",
        "error": error,
    }
