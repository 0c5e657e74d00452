"""
Ops Manifest Backend Application

FastAPI application serving compiled daily manifests and running the
scheduled compilation service.
"""

import os
import sys
import traceback
from contextlib import asynccontextmanager

import log_config  # noqa: F401
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Import API router
import api
from api import router as api_router

from core.opsmanifest.compile_service import CompileService


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan manager for startup/shutdown."""
    # Startup
    logger.info("Ops Manifest starting")

    routes = [
        f"{getattr(route, 'path', '?')} - {getattr(route, 'methods', ['MOUNT'])}"
        for route in app.routes
    ]
    logger.info(f"Registered routes: {routes}")

    compile_service = None
    if api.settings.scheduled_compile_enabled:
        compile_service = CompileService(
            api.compiler,
            interval_minutes=api.settings.compile_interval_minutes,
            timeout_seconds=api.settings.compile_timeout_seconds,
        )
        await compile_service.start()
    else:
        logger.warning("Scheduled compilation disabled")

    yield

    # Shutdown
    logger.info("Ops Manifest shutting down")
    if compile_service:
        await compile_service.stop()


# Create FastAPI application
app = FastAPI(
    title="Ops Manifest API",
    description="Daily operations manifests: store hours, equipment schedules and thermostat directives",
    version="0.1.0",
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions gracefully."""
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Request path: {request.url.path}")
    logger.error(f"Stack trace:\n{tb_str}")

    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "message": "Internal server error",
        },
    )


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


# For development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
