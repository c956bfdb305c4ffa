"""FastAPI application for the FUN FARM rewards service.

Provides REST API endpoints wrapping the funfarm package for:
- Reward evaluation and the active reward policy
- Account balances, reward history and reconciliation
- Violations, the inactivity sweep and Good Heart badges
- Quality-post bonus requests and their review
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from funfarm import __version__
from funfarm.ledger.errors import StoreUnavailable, VersionConflict
from web.backend.app.routers import accounts, bonus, moderation, rewards

logger = logging.getLogger(__name__)

app = FastAPI(
    title="FUN FARM Rewards API",
    description=(
        "REST API for the FUN FARM reward ledger. "
        "Provides endpoints for reward evaluation, account bookkeeping, "
        "violation handling and bonus request review."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# CORS middleware (allow all origins for development)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error("Store unavailable during %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Ledger unavailable, no decision was made; retry later"},
    )


@app.exception_handler(VersionConflict)
async def version_conflict_handler(request: Request, exc: VersionConflict):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(rewards.router)
app.include_router(accounts.router)
app.include_router(moderation.router)
app.include_router(bonus.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "FUN FARM Rewards API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
