"""
encore.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn encore.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from encore import __version__  # noqa: E402
from encore.api.deps import get_engine  # noqa: E402
from encore.api.routes.admin import router as admin_router  # noqa: E402
from encore.api.routes.fan_score import router as fan_score_router  # noqa: E402
from encore.api.routes.quests import router as quests_router  # noqa: E402
from encore.api.routes.votes import router as votes_router  # noqa: E402
from encore.errors import EncoreError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("Encore API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Encore API shutting down")


app = FastAPI(
    title="Encore Engagement API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EncoreError)
async def encore_error_handler(request: Request, exc: EncoreError) -> JSONResponse:
    logger.debug(
        "%s %s → %d %s", request.method, request.url.path, exc.status_code, exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Mount routers
app.include_router(votes_router, prefix="/api")
app.include_router(fan_score_router, prefix="/api")
app.include_router(quests_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
