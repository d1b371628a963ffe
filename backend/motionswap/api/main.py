"""
FastAPI Main Application
"""

from fastapi import FastAPI, Request, status
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog
from pathlib import Path

from motionswap.config.settings import settings


# Configure logging
logger = structlog.get_logger(__name__)


# Create FastAPI app
app = FastAPI(
    title="MotionSwap - Motion Transfer Video API",
    description="Asynchronous motion-transfer video generation with polling status",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _resolve_blob_root() -> str:
    blob_root = Path(settings.blob_root)
    try:
        blob_root.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        fallback = Path("data/blobs").resolve()
        fallback.mkdir(parents=True, exist_ok=True)
        logger.warning(
            "blob_root_fallback",
            configured=str(settings.blob_root),
            fallback=str(fallback),
        )
        settings.blob_root = str(fallback)
        return str(fallback)
    return str(blob_root)


# Stored generation videos
blob_root = _resolve_blob_root()
app.mount(settings.blob_url_prefix, StaticFiles(directory=blob_root), name="blobs")


# Health check endpoint
@app.get("/health")
async def health_check():
    """
    Health check endpoint

    Returns:
        JSON response with service health status
    """
    return {
        "status": "healthy",
        "version": "1.0.0",
        "service": "motionswap-backend",
    }


# Exception handlers
def _serialize_validation_errors(errors):
    cleaned = []
    for err in errors:
        err_copy = err.copy()
        ctx = err_copy.get("ctx")
        if ctx:
            err_copy["ctx"] = {
                key: (str(value) if isinstance(value, Exception) else value)
                for key, value in ctx.items()
            }
        cleaned.append(err_copy)
    return cleaned


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Render expected rejections as {"error": message}
    """
    if exc.status_code >= 500:
        logger.error("http_error", path=request.url.path, status_code=exc.status_code, error=exc.detail)
    else:
        logger.info("http_rejection", path=request.url.path, status_code=exc.status_code, error=exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle request validation errors (400)
    """
    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=_serialize_validation_errors(exc.errors()),
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Request validation failed",
            "details": _serialize_validation_errors(exc.errors()),
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Handle generic exceptions (500)
    """
    logger.error(
        "unexpected_error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "An unexpected error occurred"},
    )


# Startup event
@app.on_event("startup")
async def startup_event():
    """
    Initialize application on startup
    """
    logger.info("application_starting", log_level=settings.log_level)

    from motionswap.models import init_db

    init_db()

    logger.info("application_started")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on shutdown
    """
    logger.info("application_shutting_down")


# Import routers
from motionswap.api.routes import generations

# Register routers
app.include_router(generations.router, prefix="/api", tags=["generations"])


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint

    Returns:
        JSON response with API information
    """
    return {
        "name": "MotionSwap Motion Transfer API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }
