from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from typing import Optional
from loguru import logger

from nuvia.api import health_router
from nuvia.core.config import Settings, get_settings
from nuvia.core.logging_config import configure_logging, RequestLoggingMiddleware
from nuvia.core.error_handlers import (
    api_error_handler,
    http_exception_handler,
    general_exception_handler,
    APIError
)
from nuvia.websocket import CollaborationServer


def create_app(settings: Optional[Settings] = None):
    """
    Build the FastAPI application and wrap it with the Socket.IO server.

    Returns:
        tuple: (fastapi_app, asgi_app)
    """
    settings = settings or get_settings()
    collaboration = CollaborationServer(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan events for the FastAPI application
        """
        # Configure logging first
        configure_logging(settings)
        logger.info(f"Starting {settings.app_name}...")

        await collaboration.start_background_tasks()

        yield

        logger.info(f"Shutting down {settings.app_name}...")
        await collaboration.shutdown()

    app = FastAPI(
        title=settings.app_name,
        description="Real-time collaborative editing service for Nuvia projects",
        version=settings.app_version,
        docs_url="/docs" if settings.enable_docs else None,
        redoc_url="/redoc" if settings.enable_docs else None,
        lifespan=lifespan
    )
    app.state.collaboration = collaboration

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=settings.allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Routes
    app.include_router(health_router)
    collaboration.setup_routes(app)

    @app.get("/")
    async def root():
        """
        Root endpoint with API information
        """
        return {
            "message": settings.app_name,
            "version": settings.app_version,
            "socketio_path": f"/{settings.socketio_path}/",
            "health": "/health",
            "stats": "/api/collaboration/stats"
        }

    return app, collaboration.asgi_app(app)


app, asgi_app = create_app()

