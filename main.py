"""
main.py
FastAPI application entry point.
Registers all routers, middleware, exception handlers and startup/shutdown.

Every failure leaves the API as {"success": false, "message": ...}
(plus "errors" for validation failures and "request_id" when known).
"""

import json
import logging
import os
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from logging import LogRecord

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from config.database import close_db, get_db_context, init_db
from config.settings import settings
from services.admin.bootstrap import ensure_bootstrap_admin
from shared.utils.exceptions import AppError, InternalError, ValidationError

# Service routers
from services.admin.router import router as admin_router
from services.blog.router import router as blog_router
from services.booking.router import consultation_router, demo_router, kundli_router
from services.testimonial.router import router as testimonial_router
from services.upload.router import router as upload_router


# ── Logging ──────────────────────────────────────────────────

class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance": os.getenv("INSTANCE_NAME", "unknown"),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


# Configure structured logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(message)s"
)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
for name in (__name__, "services", "shared", "config"):
    app_logger = logging.getLogger(name)
    app_logger.handlers = [handler]
    app_logger.propagate = False
logger = logging.getLogger(__name__)


# ── Lifespan (startup/shutdown) ───────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle handler."""
    logger.info(f"Starting {settings.APP_NAME} ({settings.APP_ENV})")

    await init_db()
    logger.info("Database connected")

    async with get_db_context() as db:
        await ensure_bootstrap_admin(db)

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} is ready")
    yield

    await close_db()
    logger.info("Server shutdown complete")


# ── Error envelope ────────────────────────────────────────────

def _error_response(request: Request, status_code: int, body: dict, headers: dict | None = None) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"[{request.method} {request.url.path}] {exc.message}")
        return _error_response(request, exc.status_code, exc.to_dict(), exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = ValidationError.from_pydantic(exc.errors())
        return _error_response(request, error.status_code, error.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            body = {"success": False, "message": "Endpoint not found", "path": request.url.path}
        else:
            body = {"success": False, "message": str(exc.detail)}
        return _error_response(request, exc.status_code, body, getattr(exc, "headers", None))

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"[{request.method} {request.url.path}] Database error: {exc}", exc_info=True)
        return _error_response(request, 502, {"success": False, "message": "Storage unavailable"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler. Never expose stack traces in production."""
        logger.error(f"[{request.method} {request.url.path}] Exception: {exc}", exc_info=True)

        error = InternalError()
        body = error.to_dict()
        if settings.DEBUG:
            body["error"] = str(exc)
            body["traceback"] = traceback.format_exc()
        return _error_response(request, error.status_code, body)


# ── App Factory ───────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Accurate Astro API

REST API behind the Accurate Astro website and back office:
- **Consultations / Kundli**: Razorpay order → checkout → signature verification
- **Demo bookings**: free introductory calls, one booking per time slot
- **Blogs / Testimonials**: public reading, admin management
- **Upload**: blog images to object storage
- **Admin**: login, profile, dashboard statistics

### Authentication
Admin endpoints require `Authorization: Bearer <token>`.
Get a token from `POST /admin/login`.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware ─────────────────────────────────────────────────
    # CORS: configured origins plus preview deployments
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_origin_regex=settings.ALLOWED_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )

    # GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=500)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY,
        session_cookie="accurateastro_session",
        same_site="lax",
        https_only=settings.is_production,
    )

    # ── Custom Middleware ──────────────────────────────────────────

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add unique X-Request-ID to every request for tracing."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def process_time_middleware(request: Request, call_next):
        """Track and expose request processing time."""
        start = time.perf_counter()
        response = await call_next(request)
        process_time = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time}ms"
        return response

    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {
            "success": True,
            "status": "ok",
            "service": settings.APP_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "success": True,
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    # Register all service routers
    app.include_router(consultation_router)
    app.include_router(kundli_router)
    app.include_router(demo_router)
    app.include_router(blog_router)
    app.include_router(testimonial_router)
    app.include_router(upload_router)
    app.include_router(admin_router)

    # ── Prometheus Metrics ─────────────────────────────────────────
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", tags=["Monitoring"])

    return app


# ── Entry Point ───────────────────────────────────────────────

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
        access_log=True,
    )
