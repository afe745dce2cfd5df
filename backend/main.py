import os
import time
from contextlib import asynccontextmanager
from typing import List

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from api.logging_config import configure_logging
from api.monitoring import http_request_duration_seconds, http_requests_total
from api.routes import router
from api.sessions import DEFAULT_SESSION_ID, session_manager
from api.websocket_manager import connection_manager
from api.websocket_routes import router as websocket_router

load_dotenv()

environment = os.getenv("ENVIRONMENT", "development")
logger = configure_logging(environment)

sentry_dsn = os.getenv("SENTRY_DSN")
if sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[FastApiIntegration()],
        traces_sample_rate=0.1 if environment == "production" else 1.0,
        environment=environment,
    )
    logger.info("sentry_initialized", environment=environment)

DEV_ORIGINS = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

# Paths that are neither logged nor counted
QUIET_PATHS = {"/", "/health", "/metrics"}


def _cors_origins() -> List[str]:
    configured = os.getenv("CORS_ORIGINS", "")
    origins = [origin.strip() for origin in configured.split(",") if origin.strip()]
    return origins or DEV_ORIGINS


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the default session on startup; report what is lost on shutdown."""
    session_manager.get_session(DEFAULT_SESSION_ID)
    logger.info("application_started", environment=environment)
    yield
    # Sessions live in memory only
    logger.info("application_shutdown", sessions=len(session_manager.list_sessions()))


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    default_limits=[os.getenv("RATE_LIMIT", "120/minute")],
)
app = FastAPI(title="Financial Literacy Game API", version="1.0.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if environment == "production":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


def _endpoint_label(request: Request) -> str:
    """Route template, e.g. /api/sessions/{session_id}/start, so session ids don't become labels."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Log each API request and record its count and duration."""
    if request.url.path in QUIET_PATHS or request.url.path.startswith("/metrics"):
        return await call_next(request)

    start_time = time.time()
    client_ip = request.client.host if request.client else "unknown"
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "http_request_error",
            method=request.method,
            path=request.url.path,
            duration=time.time() - start_time,
            error=str(e),
            client_ip=client_ip,
        )
        raise

    duration = time.time() - start_time
    endpoint = _endpoint_label(request)
    http_requests_total.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
    http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(duration)
    logger.info(
        "http_request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration=duration,
        client_ip=client_ip,
    )
    return response


app.include_router(router, prefix="/api")
app.include_router(websocket_router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Financial Literacy Game API", "version": "1.0.0"}


@app.get("/health")
async def health():
    sessions = session_manager.list_sessions()
    return {
        "status": "healthy",
        "environment": environment,
        "sessions": len(sessions),
        "websocket_connections": sum(connection_manager.get_connection_count(s.session_id) for s in sessions),
    }


app.mount("/metrics", make_asgi_app())
