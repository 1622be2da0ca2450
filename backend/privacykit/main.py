from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.responses import RedirectResponse, JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .config import Settings, get_settings
from .errors import (
    LinkServiceError,
    ValidationError,
    NotFoundError,
    DuplicateCodeError,
    CodeGenerationError,
    StorageError,
)
from .lifecycle import DenialReason
from .routes import router as api_router, get_service, get_app_settings
from .schemas import DenialResponse, HealthResponse
from .services import LinkService, DenialInfo
from .shortcode import ShortCodeGenerator
from .store import LinkStore
from .utils import isoformat_millis
from .logging_config import setup_logging, get_logger, set_request_id

logger = get_logger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    DuplicateCodeError: 500,
    CodeGenerationError: 500,
    StorageError: 500,
}

DENIAL_TEXT = {
    # reason: (error, message, detail); detail may use {max_clicks}
    DenialReason.ALREADY_INACTIVE: (
        "Link expired",
        "This link is no longer active.",
        "Link was previously deactivated",
    ),
    DenialReason.TIME_EXPIRED: (
        "Link expired",
        "This link has expired.",
        "Time limit reached",
    ),
    DenialReason.CLICK_LIMIT_REACHED: (
        "Usage limit reached",
        "This link has reached its maximum number of clicks.",
        "Click limit of {max_clicks} reached",
    ),
}


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add request ID to each request for tracing."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID")
        rid = set_request_id(request_id)

        response = await call_next(request)

        response.headers["X-Request-ID"] = rid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the link store for the lifetime of the application."""
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.APP_NAME} API...")

    store = LinkStore(settings.DATABASE_URL, synchronous=settings.SQLITE_SYNCHRONOUS)
    store.init_schema()
    logger.info("Database tables created/verified")

    app.state.service = LinkService(
        store,
        generator=ShortCodeGenerator(
            store,
            length=settings.SHORT_CODE_LENGTH,
            max_attempts=settings.CODE_MAX_ATTEMPTS,
        ),
        blocked_domains=settings.BLOCKED_DOMAINS,
    )

    yield

    logger.info(f"Shutting down {settings.APP_NAME} API...")
    store.close()


def denial_body(denial: DenialInfo, settings: Settings) -> DenialResponse:
    error, message, detail = DENIAL_TEXT[denial.reason]
    return DenialResponse(
        error=error,
        message=message,
        reason=denial.reason.value,
        detail=detail.format(max_clicks=denial.max_clicks),
        expired_at=isoformat_millis(denial.expires_at),
        max_clicks=denial.max_clicks,
        home_url=settings.FRONTEND_URL,
    )


def _status_for(exc: LinkServiceError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


def _body_for(exc: LinkServiceError) -> dict:
    if isinstance(exc, ValidationError):
        return {"error": str(exc)}
    if isinstance(exc, NotFoundError):
        return {"error": "Link not found", "message": "This link does not exist."}
    if isinstance(exc, (DuplicateCodeError, CodeGenerationError)):
        return {"error": "Failed to create link"}
    return {"error": "Internal server error"}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application. The store is opened by the lifespan."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Expiring short links",
        lifespan=lifespan,
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None
    )
    app.state.settings = settings

    app.add_middleware(RequestIdMiddleware)

    if settings.CORS_ORIGINS == ["*"]:
        logger.warning("CORS configured to allow all origins. Set CORS_ORIGINS for production.")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LinkServiceError)
    async def link_error_handler(request: Request, exc: LinkServiceError):
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error(f"Error handling {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=status_code, content=_body_for(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{field}: {first.get('msg')}" if field else first.get("msg")
        else:
            message = "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # unknown routes, wrong methods and the like, in the same JSON shape
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content={"error": "Not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/")
    async def root():
        return {"status": f"{settings.APP_NAME} API is running"}

    @app.get("/health", response_model=HealthResponse)
    def health_check(service: LinkService = Depends(get_service)):
        """Health check endpoint."""
        db_healthy = service.store.health_check()
        return HealthResponse(
            status="healthy" if db_healthy else "degraded",
            database=db_healthy,
            version=settings.APP_VERSION,
        )

    app.include_router(api_router, tags=["Links"])

    @app.get("/{code}")
    def redirect_to_url(
        code: str,
        service: LinkService = Depends(get_service),
        app_settings: Settings = Depends(get_app_settings)
    ):
        """Redirect a short code, or explain why it can no longer be used."""
        result = service.resolve_link(code)

        if isinstance(result, DenialInfo):
            body = denial_body(result, app_settings)
            return JSONResponse(status_code=410, content=body.model_dump())

        return RedirectResponse(url=result.original_url, status_code=302)

    return app


def run() -> None:
    """Serve the application with uvicorn."""
    settings = get_settings()
    setup_logging(settings.DEBUG)
    uvicorn.run(
        "privacykit.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level="debug" if settings.DEBUG else "info",
    )


if __name__ == "__main__":
    run()
