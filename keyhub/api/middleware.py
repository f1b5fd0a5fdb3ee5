"""
FastAPI middleware for logging, error handling, and CORS.
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware

from keyhub.core.logger import bind_request_context, clear_request_context, get_logger
from keyhub.core.config import settings

logger = get_logger(__name__)


# ============================================================================
# Request Logging Middleware
# ============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request and tags the response with its request id.
    
    The id (and client address) is bound into the structlog context, so
    every log emitted while the request is served carries it.
    """
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        bind_request_context(
            request_id,
            client_ip=request.client.host if request.client else None
        )
        
        start_time = time.time()
        
        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
        )
        
        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                duration_ms=duration_ms,
                exc_info=True
            )
            clear_request_context()
            raise
        
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)
        clear_request_context()
        return response


# ============================================================================
# Error Handling Middleware
# ============================================================================

class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turns uncaught exceptions into a JSON 500."""
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        
        except Exception as e:
            request_id = getattr(request.state, "request_id", None)
            
            logger.error(
                f"Unhandled exception: {str(e)}",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                exc_info=True
            )
            
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": {
                        "code": "internal_error",
                        "message": "An internal error occurred",
                        "details": {
                            "request_id": request_id,
                            "type": type(e).__name__,
                        }
                    }
                },
                headers={
                    "X-Request-ID": request_id or "unknown"
                }
            )


# ============================================================================
# CORS Configuration
# ============================================================================

def setup_cors(app):
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )
    
    logger.info("CORS configured", allowed_origins=settings.cors_origins_list)


# ============================================================================
# Middleware Setup
# ============================================================================

def setup_middleware(app):
    """
    Setup all middleware for the application.
    
    Each add wraps the previous ones, so CORS ends up outermost.
    """
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    setup_cors(app)
    
    logger.info("Middleware setup completed")
