"""
Admin API routes for rotation settings and credential maintenance.
"""
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from keyhub.api.dependencies import (
    get_cache,
    get_database,
    get_http_client,
    get_session_factory,
    verify_admin_key
)
from keyhub.api.schemas import (
    CredentialHealthResponse,
    KeyRestoreRequest,
    KeyTestRequest,
    KeyTestResponse,
    RotationSettingsResponse,
    RotationSettingsUpdate
)
from keyhub.core.cache import RedisCache, rotation_settings_cache_key
from keyhub.core.logger import get_logger
from keyhub.models.provider import Credential
from keyhub.models.settings import RotationSettings, RotationStrategy
from keyhub.services.health import HealthTracker
from keyhub.services.key_tester import KeyTester
from keyhub.services.selector import load_rotation_settings
from keyhub.services.usage_logger import UsageLogger

logger = get_logger(__name__)

router = APIRouter(tags=["admin"], dependencies=[Depends(verify_admin_key)])


# ============================================================================
# Rotation Settings
# ============================================================================

@router.get("/settings/rotation", response_model=RotationSettingsResponse)
async def get_rotation_settings(db: AsyncSession = Depends(get_database)):
    """Current rotation strategy and fallback flag."""
    row = await load_rotation_settings(db)
    if row is None:
        return RotationSettingsResponse(strategy=RotationStrategy.PER_PROVIDER, fallback_enabled=True)
    return RotationSettingsResponse(strategy=row.strategy, fallback_enabled=row.fallback_enabled)


@router.put("/settings/rotation", response_model=RotationSettingsResponse)
async def update_rotation_settings(
    update_data: RotationSettingsUpdate,
    db: AsyncSession = Depends(get_database),
    cache: RedisCache = Depends(get_cache)
):
    """Update the rotation settings singleton, creating it on first write."""
    row = await load_rotation_settings(db)
    if row is None:
        row = RotationSettings()
        db.add(row)
    
    for field, value in update_data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(row, field, value)
    
    await db.commit()
    await db.refresh(row)
    await cache.delete(rotation_settings_cache_key())
    
    logger.info(
        "Rotation settings updated",
        strategy=RotationStrategy(row.strategy).value,
        fallback_enabled=row.fallback_enabled
    )
    return RotationSettingsResponse(strategy=row.strategy, fallback_enabled=row.fallback_enabled)


# ============================================================================
# Credential Maintenance
# ============================================================================

async def _get_credential(db: AsyncSession, credential_id: int) -> Credential:
    credential = await db.get(Credential, credential_id)
    if credential is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"API key {credential_id} not found"
        )
    return credential


@router.get("/api-keys/{key_id}", response_model=CredentialHealthResponse)
async def get_credential_health(key_id: int, db: AsyncSession = Depends(get_database)):
    """Priority, counters and last error of one credential."""
    return await _get_credential(db, key_id)


@router.post("/api-keys/{key_id}/test", response_model=KeyTestResponse)
async def test_credential(
    key_id: int,
    test_request: Optional[KeyTestRequest] = None,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    cache: RedisCache = Depends(get_cache),
    client: httpx.AsyncClient = Depends(get_http_client)
):
    """Send a tiny prompt through the credential; priority is left alone."""
    health = HealthTracker(session_factory, cache)
    tester = KeyTester(session_factory, health, UsageLogger(session_factory, cache), client)
    
    loaded = await tester.load(key_id)
    if loaded is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"API key {key_id} not found"
        )
    
    credential, provider = loaded
    result = await tester.test(credential, provider, test_request.model_id if test_request else None)
    return KeyTestResponse(
        success=result.success,
        status=result.status,
        status_code=result.status_code,
        error=result.error,
        response_time_ms=result.response_time_ms,
    )


@router.post("/api-keys/{key_id}/restore", response_model=CredentialHealthResponse)
async def restore_credential(
    key_id: int,
    restore_request: Optional[KeyRestoreRequest] = None,
    db: AsyncSession = Depends(get_database),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    cache: RedisCache = Depends(get_cache)
):
    """Put a demoted credential back into rotation."""
    health = HealthTracker(session_factory, cache)
    priority = restore_request.priority if restore_request else None
    
    if not await health.restore(key_id, priority):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"API key {key_id} not found"
        )
    
    return await _get_credential(db, key_id)
