"""FastAPI application entry point.

This module creates and configures the FastAPI application instance with:
- Middleware (RequestID, Timing, ErrorLogging)
- Exception handlers (SynthException, HTTPException, RequestValidationError, general)
- API routers (v1)
- Health check endpoints (/health, /ready)
- Startup/shutdown of the embedding provider, vector store and LLM provider
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from graphql_synth import __version__
from graphql_synth.api.v1 import health
from graphql_synth.api.v1.router import router as v1_router
from graphql_synth.config import get_settings
from graphql_synth.dependencies import ServiceContainer
from graphql_synth.middleware import setup_middleware
from graphql_synth.utils.errors import SynthException
from graphql_synth.utils.logging import get_logger, log_error, setup_logging

setup_logging()
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Services already placed on ``app.state.services`` (tests, embedding this
    app in another process) are used as-is and not shut down here.
    """
    logger.info("Starting GraphQL synthesis service...")
    owned = None
    if getattr(app.state, "services", None) is None:
        try:
            owned = await ServiceContainer.from_settings(get_settings())
        except Exception as e:
            logger.error(f"Failed to initialize services: {e}", exc_info=True)
            raise
        app.state.services = owned

    logger.info("GraphQL synthesis service started successfully")
    try:
        yield
    finally:
        logger.info("Shutting down GraphQL synthesis service...")
        if owned is not None:
            await owned.shutdown()
            app.state.services = None
        logger.info("GraphQL synthesis service shut down successfully")


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="GraphQL Operation Synthesis",
        description=(
            "Indexes GraphQL schemas into a vector store and turns natural-language "
            "requests into validated GraphQL operations."
        ),
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.services = None

    setup_middleware(app)
    app.include_router(v1_router)

    # Root-level health checks for container orchestrators
    app.add_api_route("/health", health.health_check, methods=["GET"], include_in_schema=False)
    app.add_api_route("/ready", health.readiness_check, methods=["GET"], include_in_schema=False)

    @app.exception_handler(SynthException)
    async def synth_exception_handler(request: Request, exc: SynthException) -> JSONResponse:
        """Handle service exceptions."""
        if exc.status_code >= 500:
            log_error(
                exc,
                context={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": exc.status_code,
                    "code": exc.code,
                },
            )
        else:
            logger.warning(
                f"{exc.code}: {exc.message}",
                extra={"extra_fields": {"path": request.url.path, "status_code": exc.status_code}},
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle HTTP exceptions (404, 503, ...)."""
        logger.warning(f"HTTP {exc.status_code}: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "message": exc.detail,
                    "code": "HTTP_ERROR",
                    "status_code": exc.status_code,
                    "details": {},
                }
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors."""
        errors = [
            {
                "field": ".".join(str(loc) for loc in error.get("loc", [])),
                "message": error.get("msg"),
                "type": error.get("type"),
            }
            for error in exc.errors()
        ]
        logger.warning(f"Validation error: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "message": "Validation failed",
                    "code": "VALIDATION_ERROR",
                    "status_code": 422,
                    "details": {"validation_errors": errors},
                }
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle all other unhandled exceptions."""
        log_error(exc, context={"method": request.method, "path": request.url.path, "unhandled": True})
        message = "An internal server error occurred" if settings.is_production else str(exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "message": message,
                    "code": "INTERNAL_SERVER_ERROR",
                    "status_code": 500,
                    "details": {} if settings.is_production else {"exception_type": type(exc).__name__},
                }
            },
        )

    return app


app = create_app()


def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "graphql_synth.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.reload and settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
