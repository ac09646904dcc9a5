"""FastAPI server for ResearchVault candidate detection"""

from __future__ import annotations

import os
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from researchvault.api.routes.agent import router as agent_router
from researchvault.api.routes.candidates import router as candidates_router
from researchvault.api.routes.health import router as health_router
from researchvault.config import APP_VERSION, DB_PATH, is_development
from researchvault.detection.service import get_detection_service
from researchvault.infrastructure.database import init_database
from researchvault.observability.logging import get_logger
from researchvault.observability.telemetry import counter, log_event
from researchvault.utils.redaction import redact

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    try:
        logger.info("Initializing database schema...")
        init_database(DB_PATH)
    except sqlite3.OperationalError as e:
        logger.critical("Database schema error: %s", e)
        raise RuntimeError(f"Database initialization failed: {e}") from e

    service = get_detection_service()
    service.scheduler.start()
    log_event("api.startup", service="researchvault", version=APP_VERSION)
    try:
        yield
    finally:
        await service.scheduler.stop()
        log_event("api.shutdown", service="researchvault")


app = FastAPI(title="ResearchVault API", version=APP_VERSION, lifespan=lifespan)


# Custom validation error handler to prevent information leakage
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning("Validation error on %s: %s", redact(str(request.url)), exc.errors())
    counter("api.validation_errors")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("RESEARCHVAULT_ALLOWED_ORIGINS", "").split(",")
    if origin.strip()
]

# Allow localhost in development only
if is_development():
    ALLOWED_ORIGINS.extend(
        [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-User-ID", "X-Request-ID"],
)

app.include_router(health_router)
app.include_router(candidates_router)
app.include_router(agent_router)


@app.get("/")
def root() -> dict[str, Any]:
    return {
        "service": "ResearchVault API",
        "version": APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "candidates": "/api/candidates",
            "analyze": "/api/candidates/analyze",
            "classify": "/api/candidates/classify",
            "classify_progress": "/api/candidates/classify/progress",
            "last_run": "/api/candidates/last-run",
            "agent_socket": "/ws/agent/{user_id}",
        },
    }
