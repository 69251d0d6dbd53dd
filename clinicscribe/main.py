"""
ClinicScribe - FastAPI Main Application
"""

import time
import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from clinicscribe.api.dependencies import limiter
from clinicscribe.api.routes import router
from clinicscribe.config import settings, Environment
from clinicscribe.core.exceptions import ClinicScribeError, UpstreamServiceError
from clinicscribe.core.logging import setup_logging, get_logger, audit_logger
from clinicscribe.core.security import security_manager
from clinicscribe.db.database import Database
from clinicscribe.models.responses import HealthCheckResponse, ErrorResponse, RateLimitResponse
from clinicscribe.services.llm_service import LLMService
from clinicscribe.services.storage_service import ObjectStorage
from clinicscribe.services.stt_service import STTService

# Initialize logging
setup_logging()
logger = get_logger(__name__)

# Prometheus metrics
request_count = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
request_duration = Histogram('http_request_duration_seconds', 'HTTP request duration')

STARTED_AT = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Opens the persistence handle and external clients; closes them on shutdown"""
    logger.info("ClinicScribe starting", environment=settings.environment.value, version=settings.api_version)

    db = Database(settings.database_url, echo=settings.database_echo).open()
    app.state.db = db
    app.state.storage = ObjectStorage()
    app.state.stt_service = STTService(usage_recorder=db.add_usage)
    app.state.llm_service = LLMService()

    try:
        yield
    finally:
        db.close()
        logger.info("ClinicScribe shutting down")


# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment == Environment.DEVELOPMENT else None,
    redoc_url="/redoc" if settings.environment == Environment.DEVELOPMENT else None,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Rate limiting
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

app.include_router(router)


def _error_response(
    request: Request, status_code: int, error: str, message: str, details: dict = None
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    body = ErrorResponse(
        error=error,
        message=message,
        details=details,
        request_id=request_id,
        timestamp=datetime.now(timezone.utc),
    )
    headers = {"X-Request-ID": request_id} if request_id else None
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


# Middleware for security headers
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    return response


# Middleware for request tracking and metrics
@app.middleware("http")
async def track_requests(request: Request, call_next):
    """Request tracking and Prometheus metrics"""

    start_time = time.time()
    request_id = security_manager.generate_request_id()
    request.state.request_id = request_id
    request.state.start_time = start_time

    response = await call_next(request)

    duration = time.time() - start_time
    request_count.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()
    request_duration.observe(duration)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Processing-Time"] = f"{duration:.3f}s"

    audit_logger.log_api_request(
        request_id=request_id,
        endpoint=request.url.path,
        method=request.method,
        status_code=response.status_code,
        duration_ms=int(duration * 1000),
        ip_address=request.client.host if request.client else None,
    )
    return response


# Health check endpoint
@app.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Service health check"""
    return HealthCheckResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=settings.api_version,
        uptime_seconds=int(time.time() - STARTED_AT),
    )


async def check_database_status(db: Database) -> tuple:
    try:
        await asyncio.to_thread(db.ping)
        return "ok", "Database is reachable."
    except Exception as e:
        return "error", f"Database check failed: {e}"


async def check_storage_status(storage: ObjectStorage) -> tuple:
    if await storage.check():
        return "ok", "Object storage is reachable."
    return "error", "Object storage bucket is not reachable."


@app.get("/ready")
async def readiness_check(request: Request):
    """
    Checks if the service and its dependencies are ready to accept traffic.
    Returns 200 OK if all checks pass, otherwise 503 Service Unavailable.
    """
    checks = {
        "database": check_database_status(request.app.state.db),
        "storage": check_storage_status(request.app.state.storage),
    }
    results = await asyncio.gather(*checks.values())

    details = {}
    all_ok = True
    for name, (check_status, message) in zip(checks.keys(), results):
        details[name] = {"status": check_status, "message": message}
        if check_status != "ok":
            all_ok = False

    response_data = {
        "status": "ready" if all_ok else "unavailable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.api_version,
        "details": details,
    }
    if all_ok:
        return JSONResponse(status_code=status.HTTP_200_OK, content=response_data)
    logger.warning("readiness_check_failed", details=details)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=response_data)


# Prometheus metrics endpoint
@app.get(settings.metrics_path)
async def metrics():
    """Prometheus metrics"""
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Metrics disabled")
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.exception_handler(ClinicScribeError)
async def application_error_handler(request: Request, exc: ClinicScribeError):
    """Maps the application exception taxonomy to JSON error bodies"""
    details = None
    if getattr(exc, "missing_fields", None):
        details = {"missing_fields": exc.missing_fields}
    if isinstance(exc, UpstreamServiceError):
        audit_logger.log_error(
            request_id=getattr(request.state, "request_id", "unknown"),
            error_type=exc.error_code,
            error_message=exc.message,
            service=exc.service,
        )
    return _error_response(request, exc.status_code, exc.error_code, exc.message, details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing parameters are reported as 400"""
    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "validation_error",
        "Missing or invalid request parameters",
        {"errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    response = _error_response(request, exc.status_code, "http_error", str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


# Override rate limit handler
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Custom rate limit error handler"""
    body = RateLimitResponse(
        message="Too many requests. Please try again later.",
        limit=settings.rate_limit_requests,
        window=settings.rate_limit_window,
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=jsonable_encoder(body),
        headers={"Retry-After": str(settings.rate_limit_window)},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error("unhandled_error", request_id=request_id, error=str(exc), exc_info=exc)
    audit_logger.log_error(request_id=request_id, error_type=type(exc).__name__, error_message=str(exc))
    return _error_response(request, 500, "internal_server_error", "An unexpected error occurred")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clinicscribe.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == Environment.DEVELOPMENT
    )
