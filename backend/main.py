"""
FastAPI Backend for SoundCloud Audio Converter
"""

import logging
import shutil
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=False,
)

logger = structlog.get_logger()

# Import settings
from config import settings
from services.errors import ConversionError
from services.process_runner import resolve_executable


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("application_startup", message="FastAPI application starting up")

    # Validate configuration
    try:
        settings.validate()
        logger.info(
            "config_validated",
            max_file_size_mb=settings.MAX_FILE_SIZE_MB,
            conversion_timeout_ms=settings.CONVERSION_TIMEOUT_MS,
        )
    except ValueError as e:
        logger.error("config_validation_failed", error=str(e))
        raise

    # Remove temp files left behind by a previous crash
    try:
        from services.temp_files import sweep_stale_temp_files
        sweep_stale_temp_files()
    except Exception as e:
        logger.error("stale_temp_sweep_error", error=str(e))

    logger.info("ytdlp_resolved", path=resolve_executable("yt-dlp", settings.YTDLP_PATH))

    yield

    logger.info("application_shutdown", message="FastAPI application shutting down")


# Initialize FastAPI app
app = FastAPI(
    title="SoundCloud Audio Converter API",
    description="Converts SoundCloud tracks to WAV or FLAC using yt-dlp",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware configuration
cors_origins = settings.cors_origins_list or ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    # Browsers reject credentials with a wildcard origin
    allow_credentials="*" not in cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests"""
    start_time = time.time()

    # Log request
    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None
    )

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        # Log response
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=f"{process_time:.3f}s"
        )

        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            process_time=f"{process_time:.3f}s"
        )
        raise


# Conversion pipeline errors carry their own status and user-facing message
@app.exception_handler(ConversionError)
async def conversion_exception_handler(request: Request, exc: ConversionError):
    """Render pipeline errors as {"error": "..."}"""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global error handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions"""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint

    Returns:
        dict: Health status of the API and whether yt-dlp can be located
    """
    ytdlp_path = resolve_executable("yt-dlp", settings.YTDLP_PATH)
    return {
        "status": "healthy",
        "service": "soundcloud-audio-converter",
        "version": "1.0.0",
        "ytdlp_available": bool(shutil.which(ytdlp_path)),
    }


# Include routers
from routers import audio_converter

app.include_router(audio_converter.router)


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information"""
    return {
        "message": "SoundCloud Audio Converter API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "convert_wav": "/api/convert",
            "convert_flac": "/api/convert-flac",
            "metadata": "/api/metadata"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
