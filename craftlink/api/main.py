"""
craftlink.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn craftlink.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from craftlink.api.deps import get_engine  # noqa: E402
from craftlink.api.routes.config import router as config_router  # noqa: E402
from craftlink.api.routes.connection import router as connection_router  # noqa: E402
from craftlink.api.routes.players import router as players_router  # noqa: E402
from craftlink.errors import CraftLinkError, ValidationError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from ``CORS_ALLOW_ORIGINS`` (comma-separated)."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]
    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("CraftLink API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("CraftLink API shutting down")


app = FastAPI(
    title="CraftLink API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CraftLinkError)
async def craftlink_error_handler(request: Request, exc: CraftLinkError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and parameters become a plain 400 ``ValidationError``.

    Only the offending field names are returned; the parser detail is logged.
    """
    fields = sorted({
        ".".join(str(part) for part in err.get("loc", ())[1:]) or "body"
        for err in exc.errors()
    })
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
    error = ValidationError(f"Invalid or missing value for: {', '.join(fields)}.")
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": error.to_dict()},
    )


app.include_router(connection_router, prefix="/api")
app.include_router(players_router, prefix="/api")
app.include_router(config_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
