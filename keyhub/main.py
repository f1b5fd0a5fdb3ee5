"""
Main FastAPI application entry point.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from keyhub import __version__
from keyhub.core.cache import cache
from keyhub.core.config import settings
from keyhub.core.database import close_db, init_db
from keyhub.core.exceptions import CandidatesExhausted, NoRouteAvailable
from keyhub.core.logger import get_logger
from keyhub.api.middleware import setup_middleware
from keyhub.api.routes import admin, chat, models

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Startup and shutdown: database, Redis and the recovery loop."""
    logger.info("Starting KeyHub gateway")
    logger.info(f"Environment: {settings.environment}")
    
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}", exc_info=True)
        raise
    
    await cache.connect()
    
    recovery_task = None
    if settings.recovery_enabled:
        from keyhub.services.recovery import start_recovery_service
        recovery_task = asyncio.create_task(start_recovery_service())
        logger.info("Recovery service started")
    
    logger.info("Application startup complete")
    
    yield
    
    logger.info("Shutting down KeyHub gateway")
    
    if recovery_task is not None:
        recovery_task.cancel()
        try:
            await recovery_task
        except asyncio.CancelledError:
            logger.info("Recovery service stopped")
    
    await cache.disconnect()
    await close_db()


# ============================================================================
# Error Handlers
# ============================================================================

async def no_route_handler(request: Request, exc: NoRouteAvailable):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def exhausted_handler(request: Request, exc: CandidatesExhausted):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def not_found_handler(request: Request, exc):
    detail = getattr(exc, "detail", None)
    return JSONResponse(
        status_code=404,
        content={
            "error": {
                "code": "not_found",
                "message": detail if detail and detail != "Not Found" else "The requested resource was not found",
                "path": str(request.url.path)
            }
        }
    )


async def method_not_allowed_handler(request: Request, exc):
    return JSONResponse(
        status_code=405,
        content={
            "error": {
                "code": "method_not_allowed",
                "message": f"Method {request.method} not allowed for this endpoint",
                "path": str(request.url.path)
            }
        }
    )


# ============================================================================
# Application Factory
# ============================================================================

def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.
    
    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.app_name,
        description="One OpenAI-compatible endpoint in front of many AI vendors, with key rotation and failover",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan
    )
    
    setup_middleware(app)
    
    app.add_exception_handler(NoRouteAvailable, no_route_handler)
    app.add_exception_handler(CandidatesExhausted, exhausted_handler)
    app.add_exception_handler(404, not_found_handler)
    app.add_exception_handler(405, method_not_allowed_handler)
    
    app.include_router(chat.router)
    app.include_router(models.router)
    app.include_router(admin.router, prefix="/api")
    
    @app.get("/", tags=["root"])
    @app.get("/api", tags=["root"])
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "status": "running",
            "docs": "/docs" if settings.debug else "disabled",
        }
    
    @app.get("/health", tags=["root"])
    @app.get("/healthz", tags=["root"])
    async def health_check():
        """Health check endpoint for load balancers."""
        return {
            "status": "healthy",
            "service": settings.app_name
        }
    
    @app.get("/version", tags=["root"])
    async def version():
        return {
            "version": __version__,
            "api_version": "v1",
            "environment": settings.environment
        }
    
    logger.info("Routes registered")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    
    uvicorn.run(
        "keyhub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
