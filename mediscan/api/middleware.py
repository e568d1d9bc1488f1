"""
API middleware for MediScan AI.

Provides:
- Rate limiting
- User context resolution
- Request logging
- Global error handling
"""

import time
from typing import Callable, Optional

from fastapi import Request, Response, HTTPException
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from mediscan.config import settings
from mediscan.utils.logger import get_logger

logger = get_logger("middleware")


# Rate limiter using client IP
limiter = Limiter(key_func=get_remote_address)

PUBLIC_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}


def get_bearer_token(request: Request) -> Optional[str]:
    """Extract a bearer token from the Authorization header."""
    auth = request.headers.get("Authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def resolve_request_user(request: Request) -> Optional[str]:
    """
    Work out who is making the request.

    With the Supabase backend a bearer access token is verified against
    Supabase auth. Otherwise the identity proxy in front of the service
    passes the user in the X-User-ID header.
    """
    token = get_bearer_token(request)
    if token and settings.storage_backend == "supabase":
        from mediscan.core.supabase_client import resolve_user_id
        return await run_in_threadpool(resolve_user_id, token)

    user_id = request.headers.get("X-User-ID", "").strip()
    return user_id or None


class UserContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that attaches the requesting user to the request.

    Sets ``request.state.user_id`` (None for anonymous requests). Routes
    that need an owner reject anonymous requests themselves.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        if request.url.path in PUBLIC_PATHS:
            request.state.user_id = None
            return await call_next(request)

        request.state.user_id = await resolve_request_user(request)
        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for request/response logging.

    Logs:
    - Request method, path, user
    - Response status code
    - Processing time
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        start_time = time.time()

        method = request.method
        path = request.url.path
        client_ip = get_remote_address(request)

        logger.info(
            "Request received",
            method=method,
            path=path,
            client_ip=client_ip
        )

        try:
            response = await call_next(request)

            process_time = time.time() - start_time

            logger.info(
                "Request completed",
                method=method,
                path=path,
                status_code=response.status_code,
                process_time_ms=int(process_time * 1000),
                user_id=getattr(request.state, "user_id", None)
            )

            response.headers["X-Process-Time"] = f"{process_time:.4f}"

            return response

        except Exception as e:
            process_time = time.time() - start_time

            logger.error(
                "Request failed",
                method=method,
                path=path,
                error=str(e),
                process_time_ms=int(process_time * 1000)
            )
            raise


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    Catches unhandled exceptions and returns safe error responses.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        try:
            return await call_next(request)

        except HTTPException:
            raise

        except Exception as e:
            logger.error("Unhandled exception", error=str(e), exc_info=True)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal Server Error",
                    "message": "An unexpected error occurred. Please try again.",
                    "error_code": "INTERNAL_ERROR"
                }
            )


def setup_rate_limiting(app) -> None:
    """Setup rate limiting on the application."""
    app.state.limiter = limiter

    @app.exception_handler(429)
    async def rate_limit_handler(request: Request, exc: Exception):
        return JSONResponse(
            status_code=429,
            content={
                "error": "Rate Limit Exceeded",
                "message": "Too many requests. Please wait before trying again.",
                "error_code": "RATE_LIMIT_EXCEEDED"
            }
        )
