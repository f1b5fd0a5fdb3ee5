"""
Append-only usage log sink.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import async_sessionmaker

from keyhub.core.cache import RedisCache, LOGS_INSERT, UNIFIED_KEYS_UPDATE
from keyhub.core.logger import get_logger
from keyhub.models.unified_key import UnifiedApiKey
from keyhub.models.usage_log import UsageLog

logger = get_logger(__name__)

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"


@dataclass(frozen=True)
class AttemptRecord:
    """Outcome of one upstream attempt, as written to the usage log."""
    provider_id: Optional[int]
    credential_id: Optional[int]
    model_name: Optional[str]
    status: str  # success, error
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    response_time_ms: Optional[int] = None
    tokens_used: Optional[int] = None
    unified_key_id: Optional[int] = None
    request_path: str = CHAT_COMPLETIONS_PATH
    provider_name: Optional[str] = None
    api_key_name: Optional[str] = None


class UsageLogger:
    """
    Writes one usage row per attempt in its own transaction.
    
    Write-only from the engine's point of view: failures are logged and
    never propagate into the failover loop.
    """
    
    def __init__(self, session_factory: async_sessionmaker, events: Optional[RedisCache] = None):
        self.session_factory = session_factory
        self.events = events
    
    async def record(self, entry: AttemptRecord) -> Optional[int]:
        """
        Append a usage log entry.
        
        Returns:
            New log id, or None if the write failed
        """
        log_entry = UsageLog(
            unified_key_id=entry.unified_key_id,
            provider_id=entry.provider_id,
            provider_key_id=entry.credential_id,
            model_name=entry.model_name,
            request_path=entry.request_path,
            status=entry.status,
            status_code=entry.status_code,
            error_message=entry.error_message,
            response_time_ms=entry.response_time_ms,
            tokens_used=entry.tokens_used,
            created_at=datetime.utcnow(),
        )
        
        try:
            async with self.session_factory() as session:
                session.add(log_entry)
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to write usage log: {str(e)}", provider_id=entry.provider_id)
            return None
        
        if self.events:
            await self.events.publish(LOGS_INSERT, {
                "id": log_entry.id,
                "provider_id": entry.provider_id,
                "provider_key_id": entry.credential_id,
                "provider_name": entry.provider_name,
                "api_key_name": entry.api_key_name,
                "model_name": entry.model_name,
                "status": entry.status,
                "status_code": entry.status_code,
                "error_message": entry.error_message,
                "response_time_ms": entry.response_time_ms,
                "tokens_used": entry.tokens_used,
                "created_at": log_entry.created_at.isoformat(),
            })
        return log_entry.id
    
    async def mark_caller_failed(self, unified_key_id: Optional[int]) -> None:
        """Count an exhausted request against the caller's unified key."""
        if unified_key_id is None:
            return
        
        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(UnifiedApiKey)
                    .where(UnifiedApiKey.id == unified_key_id)
                    .values(failed_requests=UnifiedApiKey.failed_requests + 1)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except Exception as e:
            logger.error("Failed to update unified key", unified_key_id=unified_key_id, error=str(e))
            return
        
        if self.events:
            await self.events.publish(UNIFIED_KEYS_UPDATE, {"id": unified_key_id})
