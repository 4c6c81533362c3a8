"""
Bin Cycle Count - Main Application
Local host API around the inventory reconciliation pipeline
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging

from cyclecount.core.config import settings
from cyclecount.core.exceptions import (
    CycleCountError,
    ImportFailed,
    InvalidQuantity,
    InvalidScope,
    InvalidTransition,
    NotFoundError,
    OutOfScope,
    SessionClosed,
    StorageFailed,
)
from cyclecount.api.v1 import api_router
from cyclecount.services.pipeline import CountingPipeline

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Status code per error kind; first match wins
ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (SessionClosed, status.HTTP_409_CONFLICT),
    (InvalidScope, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (OutOfScope, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidQuantity, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ImportFailed, status.HTTP_400_BAD_REQUEST),
    (StorageFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def create_app(pipeline: Optional[CountingPipeline] = None) -> FastAPI:
    """
    Build the FastAPI application

    A pipeline can be passed in (tests, embedding hosts); otherwise one is
    built from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info("Starting Bin Cycle Count API")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        app.state.pipeline = (pipeline or CountingPipeline.from_settings()).open()
        yield
        app.state.pipeline.close()
        logger.info("Shutting down Bin Cycle Count API")

    app = FastAPI(
        title=f"{settings.PROJECT_NAME} API",
        description="Local-first warehouse cycle count: imports, sessions, variance and audit",
        version=settings.VERSION,
        docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CycleCountError)
    async def cycle_count_error_handler(request: Request, exc: CycleCountError):
        """Typed pipeline errors become {code, message} responses"""
        status_code = next(
            (code for error_type, code in ERROR_STATUS if isinstance(exc, error_type)),
            status.HTTP_400_BAD_REQUEST,
        )
        logger.warning(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    # Include API routes
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "cyclecount.main:app",
        host="127.0.0.1",
        port=8000,
        reload=settings.ENVIRONMENT == "development"
    )
