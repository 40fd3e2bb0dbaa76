"""
VidTube Accounts

FastAPI application factory.

Run with:
    uvicorn src.main:create_app --factory
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.deps import Services
from src.api.middleware.rate_limit import RateLimitMiddleware
from src.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from src.api.v1 import router as api_v1_router
from src.config import Settings, get_settings
from src.container import AppServices
from src.kernel.errors import ServiceError
from src.logging_config import configure_logging, get_logger
from src.schemas.common import ApiErrorResponse, HealthResponse, format_validation_errors

logger = get_logger(__name__)


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    errors: Optional[list] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    """Build the standard error envelope."""
    req_id = getattr(request.state, "request_id", None)
    body = ApiErrorResponse(
        status_code=status_code,
        message=message,
        errors=errors or [],
        request_id=req_id if status_code >= 500 else None,
    )
    response_headers = dict(headers or {})
    if req_id:
        response_headers[REQUEST_ID_HEADER] = req_id
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True) | {"data": None},
        headers=response_headers,
    )


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """
    Translate every error into the standard envelope.

    Domain errors keep their status; anything unexpected becomes a 500
    without leaking internals.
    """

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(
            "Request rejected: %s",
            exc.message,
            extra={
                "path": request.url.path,
                "status_code": exc.status_code,
                "error_code": exc.error_code,
            },
            exc_info=exc if exc.status_code >= 500 else None,
        )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
        return _error_response(request, exc.status_code, exc.message, exc.errors, headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return _error_response(request, exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            "Validation error",
            format_validation_errors(exc.errors()),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Unexpected exceptions: log the stack trace, return a generic 500."""
        logger.exception("Unhandled exception: %s", exc)
        # This handler runs outside the CORS middleware
        origin = request.headers.get("origin")
        headers = {}
        if origin and origin in settings.cors_origins:
            headers = {
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Credentials": "true",
            }
        message = "Internal server error"
        if settings.debug:
            message = f"{message}: {type(exc).__name__}"
        return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, message, headers=headers)


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[AppServices] = None,
) -> FastAPI:
    """
    Build the application.

    The service container is created here, exposed as ``app.state.services``
    and disposed when the application shuts down.
    """
    settings = settings or get_settings()
    services = services or AppServices.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        configure_logging(
            log_level=settings.log_level,
            environment=settings.environment,
            debug=settings.debug,
        )
        logger.info("Starting %s v%s", settings.project_name, settings.version)
        await services.database.create_all()
        logger.info("Database initialized")

        yield

        logger.info("Shutting down...")
        await services.aclose()
        logger.info("Services closed")

    app = FastAPI(
        title=settings.project_name,
        description="""
        Account backend for a video-sharing application.

        ## Features

        - **Registration** with avatar and cover image uploads
        - **Login** by username or email, tokens in body and http-only cookies
        - **Session rotation**: single active refresh token per account
        - **Profile**: fetch, update details, replace avatar/cover image
        """,
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.services = services

    # add_middleware stacks innermost-first, so the last added is outermost
    app.add_middleware(RateLimitMiddleware, settings=settings)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app, settings)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(services: Services):
        """Check application health."""
        try:
            await services.database.ping()
        except (SQLAlchemyError, OSError):
            logger.exception("Health check: database unavailable")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content=HealthResponse(
                    status="degraded",
                    version=settings.version,
                    database="unavailable",
                ).model_dump(),
            )
        return HealthResponse(status="ok", version=settings.version, database="connected")

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.project_name,
            "version": settings.version,
            "docs": "/docs" if settings.debug else "disabled",
            "api": {
                "v1": settings.api_v1_prefix,
            },
        }

    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)

    if settings.blob_store_backend == "local" and settings.media_base_url.startswith("/"):
        Path(settings.media_root).mkdir(parents=True, exist_ok=True)
        app.mount(
            settings.media_base_url,
            StaticFiles(directory=settings.media_root),
            name="media",
        )

    return app


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=dev_settings.debug,
    )
