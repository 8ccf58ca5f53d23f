"""Promoto — FastAPI Application Entry Point.

Automatic Meta ad promotion for restaurant social posts.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from promoto.database import init_db, test_connection
from promoto.scheduler.jobs import start_scheduler, stop_scheduler
from promoto.api.restaurant_routes import router as restaurant_router
from promoto.api.ad_set_routes import router as ad_set_router
from promoto.api.opportunity_routes import router as opportunity_router
from promoto.api.post_routes import router as post_router
from promoto.api.scheduler_routes import router as scheduler_router
from promoto.api.tracking_routes import router as tracking_router
from promoto.api.webhook_routes import router as webhook_router
from promoto.core.logging import get_logger

logger = get_logger("main")


IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 Promoto starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("Promoto shut down")


app = FastAPI(
    title="Promoto",
    description="Classifies restaurant posts and promotes them as Meta ads in versioned, capacity-limited ad sets.",
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
app.include_router(restaurant_router)
app.include_router(ad_set_router)
app.include_router(opportunity_router)
app.include_router(post_router)
app.include_router(scheduler_router)
app.include_router(tracking_router)
app.include_router(webhook_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "promoto",
        "version": "1.0.0",
    }
