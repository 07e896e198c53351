"""FastAPI application — Driver Scenario API.

Serves driver-tree roll-ups, baseline P&L and lever what-if scenarios
over uploaded datasets.  The frontend communicates exclusively through
this API.
"""

from __future__ import annotations

import os
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import datasets, scenario

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Driver Scenario API",
    version="0.3.0",
    description="Driver-tree roll-up and lever what-if scenario engine",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------
ALLOWED_ORIGINS = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:3000",
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in ALLOWED_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(datasets.router, prefix="/v1", tags=["datasets"])
app.include_router(scenario.router, prefix="/v1", tags=["scenario"])


# ---------------------------------------------------------------------------
# Health Check
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.3.0"}


@app.get("/")
async def root():
    return {"message": "Driver Scenario API", "docs": "/docs"}
