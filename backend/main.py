"""
Profile Card Backend

FastAPI application wiring:
- AppContext created per process, initialized in the lifespan
- Global rate limit, security headers and request logging middleware
- CardServiceError -> {"error": ...} JSON with the error's status code
- Bounded shutdown: past SHUTDOWN_TIMEOUT the process exits forcibly

Run:
    cd backend
    python main.py
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cache.routes import router as cache_router
from core.config import Settings
from core.context import AppContext
from core.dependencies import client_key
from core.errors import CardServiceError, RateLimited
from profiles.routes import router as profiles_router
from renderer.routes import router as card_router
from security.routes import router as security_router

logger = logging.getLogger(__name__)

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: https:; font-src 'self' data:; connect-src 'self'; frame-ancestors 'none';"
)


def _error_response(error: CardServiceError) -> JSONResponse:
    body = {"error": error.message}
    headers = {}
    if isinstance(error, RateLimited):
        body["retryAfter"] = error.retry_after
        headers["Retry-After"] = str(error.retry_after)
    return JSONResponse(status_code=error.status_code, content=body, headers=headers)


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the application

    Args:
        context: Pre-built context (tests inject fakes); defaults to one built from the environment
    """
    context = context or AppContext(Settings.from_env())
    settings = context.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await context.initialize()
        logger.info("✅ Server ready")
        yield
        logger.info("Shutting down...")
        if not await context.shutdown_within(settings.shutdown_timeout):
            logger.error("Forcing exit")
            os._exit(1)

    app = FastAPI(title="Profile Card Backend", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(GZipMiddleware)

    # ============================================
    # Middleware
    # ============================================

    @app.middleware("http")
    async def global_rate_limit(request: Request, call_next):
        decision = context.global_limiter.check_and_record(client_key(request))
        if not decision.allowed:
            return _error_response(RateLimited(decision.retry_after_seconds))
        return await call_next(request)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(f'"{request.method} {request.url.path}" {response.status_code} {elapsed_ms}ms')
        return response

    # Must stay outermost: limiter 429s need CORS headers too
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_origin],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token", "X-Session-Id"],
    )

    # ============================================
    # Error handlers
    # ============================================

    @app.exception_handler(CardServiceError)
    async def card_service_error(request: Request, exc: CardServiceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail or exc.message}")
        return _error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    # ============================================
    # Routes
    # ============================================

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "timestamp": int(time.time() * 1000),
            "browser": context.browser.state.value,
        }

    app.include_router(profiles_router)
    app.include_router(card_router)
    app.include_router(cache_router)
    app.include_router(security_router)

    return app


def main() -> None:
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(AppContext(settings))
    uvicorn.run(app, host="::", port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    main()
