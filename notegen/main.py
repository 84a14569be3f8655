"""
Main FastAPI application for the notegen backend.
Handles CORS, request logging middleware, lifespan events, error mapping
and router registration.
"""
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from notegen.config import settings
from notegen.routers import batches, curriculum, health, lessons, schemes
from notegen.services.errors import (
    GenerationFailure,
    GenerationTimeout,
    InsufficientBalanceError,
    ParseError,
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting %s backend …", settings.APP_NAME)
    logger.info("=" * 60)

    if settings.GENERATION_API_KEY:
        logger.info("✓ Generation endpoint: %s (%s)", settings.GENERATION_API_URL, settings.GENERATION_MODEL)
    else:
        logger.warning(
            "⚠ GENERATION_API_KEY is not set; prompt-based batches and "
            "document scheme imports will be unavailable."
        )

    os.makedirs(settings.DRAFT_DIR, exist_ok=True)
    logger.info("✓ Draft directory: %s", os.path.abspath(settings.DRAFT_DIR))

    logger.info("=" * 60)
    logger.info("  %s backend ready on http://%s:%d", settings.APP_NAME, settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down %s backend …", settings.APP_NAME)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description=(
        "**notegen** — curriculum ingestion and lesson-note rendering.\n\n"
        "Import curriculum and scheme-of-learning files, parse generated "
        "lesson JSON, and render lesson notes to Word documents.\n\n"
        "Key endpoints:\n"
        "- `POST /api/curriculum/import` — curriculum CSV/JSON → merged records\n"
        "- `POST /api/schemes/import` — scheme CSV/PDF/DOCX → workspace items\n"
        "- `POST /api/lessons/parse` — generation response → lessons\n"
        "- `POST /api/lessons/render` — lessons → .docx\n"
        "- `POST /api/batches` — background generate + render + zip\n"
    ),
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(ParseError)
async def parse_error_handler(request: Request, exc: ParseError):
    """Unusable uploads and unparseable generation output → 422."""
    logger.warning("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


@app.exception_handler(GenerationFailure)
async def generation_error_handler(request: Request, exc: GenerationFailure):
    """Generation endpoint failures → 502 (timeouts 504, exhausted balance 402)."""
    code = status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, GenerationTimeout):
        code = status.HTTP_504_GATEWAY_TIMEOUT
    elif isinstance(exc, InsufficientBalanceError):
        code = status.HTTP_402_PAYMENT_REQUIRED
    logger.error("%s %s: generation failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,      prefix="/api/health",     tags=["Health"])
app.include_router(curriculum.router,  prefix="/api/curriculum", tags=["Curriculum"])
app.include_router(schemes.router,     prefix="/api/schemes",    tags=["Schemes"])
app.include_router(lessons.router,     prefix="/api/lessons",    tags=["Lessons"])
app.include_router(batches.router,     prefix="/api/batches",    tags=["Batches"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": f"{settings.APP_NAME} API",
        "version": settings.VERSION,
        "description": "Curriculum ingestion and lesson-note rendering backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "curriculum": "/api/curriculum",
            "schemes": "/api/schemes",
            "lessons": "/api/lessons",
            "batches": "/api/batches",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "notegen.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
