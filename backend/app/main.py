"""
mail2cal Backend API
FastAPI application that turns inbound emails into calendar events.
"""

import logging
import os
from typing import List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from app.dependencies import get_event_store
from app.routers import debug, events, webhook
from app.services.event_store import SupabaseEventStore

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="mail2cal API",
    description="Forward an email, get back an .ics calendar file",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes http://localhost:3000 (frontend dev server). Additional
    origins are read from the CORS_ORIGINS environment variable as a
    comma-separated list. Duplicates are removed while preserving order.
    """
    always_included = ["http://localhost:3000"]

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(webhook.router, prefix="/api", tags=["webhook"])
app.include_router(events.router, prefix="/api/events", tags=["events"])
app.include_router(debug.router, prefix="/api/debug", tags=["debug"])


@app.get("/")
async def root():
    return {"message": "mail2cal API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the event store connection.

    Runs a one-row SELECT against the event records table. Returns 503 when
    the store is unconfigured or unreachable.
    """
    try:
        store: SupabaseEventStore = get_event_store()
        store.ping()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
