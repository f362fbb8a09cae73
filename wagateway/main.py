"""FastAPI application entry point: multi-tenant WhatsApp gateway"""

import asyncio
import os
import signal
import sys
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wagateway.api.routes import bridge, sessions
from wagateway.config import settings, validate_settings
from wagateway.context import GatewayContext, build_gateway_context
from wagateway.core.exceptions import AppException
from wagateway.core.logging import log, setup_logging


def install_crash_guards(loop: asyncio.AbstractEventLoop) -> None:
    """Any error that escaped every handler is logged and stops the process."""

    def loop_exception_handler(loop, context):
        exc = context.get("exception")
        log.opt(exception=exc).critical(f"Unhandled error in event loop, shutting down: {context.get('message')}")
        os.kill(os.getpid(), signal.SIGTERM)

    def excepthook(exc_type, exc, tb):
        log.opt(exception=(exc_type, exc, tb)).critical("Uncaught exception, shutting down")
        os.kill(os.getpid(), signal.SIGTERM)

    loop.set_exception_handler(loop_exception_handler)
    sys.excepthook = excepthook


def create_app(gateway: GatewayContext | None = None) -> FastAPI:
    """Build the application; a prebuilt gateway skips settings-driven wiring."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        setup_logging(
            debug=settings.get("DEBUG", False),
            log_format=settings.get("LOG_FORMAT", "pretty"),
            log_dir=settings.get("LOG_DIR", "logs"),
        )
        log.info(f"Starting {settings.get('APP_NAME', 'WhatsApp Gateway')}...")
        log.info(f"Environment: {settings.current_env}")
        install_crash_guards(asyncio.get_running_loop())

        if app.state.gateway is None:
            validate_settings()
            app.state.gateway = build_gateway_context(settings)

        context: GatewayContext = app.state.gateway
        log.info(
            f"Credential backend: {context.store.backend}, "
            f"reply pipeline: {context.dispatcher.name}, "
            f"reconnect delay: {context.manager.reconnect_delay}s"
        )
        await context.startup()

        yield

        log.info("Shutting down...")
        await context.shutdown()

    debug = settings.get("DEBUG", False)
    app = FastAPI(
        title=settings.get("APP_NAME", "WhatsApp Gateway"),
        description="Multi-tenant WhatsApp gateway with pluggable reply pipeline",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if debug else None,
        redoc_url="/redoc" if debug else None,
    )
    app.state.gateway = gateway

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Log all requests."""
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()
        request.state.request_id = request_id

        with log.contextualize(request_id=request_id):
            log.info(
                "Request started",
                method=request.method,
                path=request.url.path,
            )
            response = await call_next(request)
            duration_ms = (time.time() - start_time) * 1000
            log.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

        return response

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        """Handle application exceptions."""
        if exc.status_code >= 500:
            log.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.details})")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "details": exc.details},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed bodies are reported like missing fields."""
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        log.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
        )

    # Routes
    app.include_router(sessions.router, tags=["sessions"])
    app.include_router(bridge.router, prefix="/bridge", tags=["bridge"])

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        context = request.app.state.gateway
        return {
            "status": "healthy",
            "app": settings.get("APP_NAME", "WhatsApp Gateway"),
            "active_sessions": len(context.registry) if context else 0,
        }

    @app.get("/")
    async def root():
        """Liveness endpoint."""
        return {
            "status": "online",
            "service": settings.get("APP_NAME", "WhatsApp Gateway"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()
