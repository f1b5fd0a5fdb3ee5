"""
FastAPI dependencies for dependency injection.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from keyhub.core.database import AsyncSessionLocal, get_db
from keyhub.core.cache import RedisCache, cache, UNIFIED_KEYS_UPDATE
from keyhub.core.config import settings
from keyhub.core.logger import get_logger
from keyhub.models.unified_key import UnifiedApiKey

logger = get_logger(__name__)


# ============================================================================
# Database Dependencies
# ============================================================================

async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async for session in get_db():
        yield session


def get_session_factory() -> async_sessionmaker:
    """
    Session factory for services that open their own short transactions.
    
    Health and usage writes must commit independently of the request.
    """
    return AsyncSessionLocal


# ============================================================================
# Cache and Upstream Client Dependencies
# ============================================================================

async def get_cache() -> RedisCache:
    """Get the shared Redis cache (also the event publisher)."""
    return cache


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Upstream HTTP client scoped to one request."""
    async with httpx.AsyncClient(timeout=settings.upstream_timeout) as client:
        yield client


# ============================================================================
# Authentication Dependencies
# ============================================================================

@dataclass
class CallerIdentity:
    """Authenticated caller of the public endpoint."""
    api_key: str
    unified_key_id: Optional[int] = None


def _extract_key(authorization: Optional[str], fallback: Optional[str]) -> Optional[str]:
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
    return fallback or None


async def verify_api_key(
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    events: RedisCache = Depends(get_cache)
) -> CallerIdentity:
    """
    Verify the caller key from Authorization or X-API-Key header.
    
    Active unified keys are checked first and get their usage stamped;
    otherwise the key must be one of ``API_KEYS``. With no unified keys
    matched and ``API_KEYS`` empty, any non-empty key is accepted.
    
    Raises:
        HTTPException: If the key is missing or invalid
    """
    api_key = _extract_key(authorization, x_api_key)
    
    if not api_key:
        logger.warning("API key missing in request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key is required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    async with session_factory() as session:
        unified_key_id = await session.scalar(
            select(UnifiedApiKey.id).where(
                UnifiedApiKey.api_key == api_key,
                UnifiedApiKey.is_active == True  # noqa: E712
            )
        )
        if unified_key_id is not None:
            await session.execute(
                update(UnifiedApiKey)
                .where(UnifiedApiKey.id == unified_key_id)
                .values(
                    total_requests=UnifiedApiKey.total_requests + 1,
                    last_used_at=datetime.utcnow()
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
    
    if unified_key_id is not None:
        await events.publish(UNIFIED_KEYS_UPDATE, {"id": unified_key_id})
        return CallerIdentity(api_key=api_key, unified_key_id=unified_key_id)
    
    if settings.api_keys and api_key not in settings.api_keys:
        logger.warning(f"Invalid API key attempted: {api_key[:8]}...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    return CallerIdentity(api_key=api_key)


async def verify_admin_key(
    authorization: Optional[str] = Header(None),
    x_admin_key: Optional[str] = Header(None)
) -> str:
    """
    Verify admin key for management endpoints.
    
    Raises:
        HTTPException: 401 if missing, 403 if wrong
    """
    admin_key = _extract_key(authorization, x_admin_key)
    
    if not admin_key:
        logger.warning("Admin key missing in request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin key is required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    if admin_key != settings.admin_key:
        logger.warning(f"Invalid admin key attempted: {admin_key[:min(8, len(admin_key))]}...")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )
    
    return admin_key


# ============================================================================
# Request Context Dependencies
# ============================================================================

async def get_client_ip(
    x_forwarded_for: Optional[str] = Header(None),
    x_real_ip: Optional[str] = Header(None),
) -> Optional[str]:
    """Client IP from proxy headers, first hop of X-Forwarded-For wins."""
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    
    if x_real_ip:
        return x_real_ip.strip()
    
    return None
