"""
Credential and provider health bookkeeping after each upstream attempt.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from keyhub.core.cache import RedisCache, API_KEYS_UPDATE, PROVIDERS_UPDATE
from keyhub.core.config import settings
from keyhub.core.exceptions import FailureSeverity
from keyhub.core.logger import get_logger
from keyhub.models.provider import Provider, Credential

logger = get_logger(__name__)


class HealthTracker:
    """
    Two-level circuit breaker over priorities.
    
    A failing credential sinks within its provider: by ``demotion_step`` for
    generic upstream errors, straight to ``priority_floor`` for quota and
    auth failures when ``severe_to_floor`` is set. Once every active
    credential of a provider sits at or below the floor, the provider itself
    sinks by ``provider_step`` (never below zero).
    
    Success never raises priority; ``restore`` is the only way back up.
    All writes are single atomic UPDATE statements in short transactions, so
    concurrent requests may race on the counters but never lose a whole row.
    Storage failures are logged and swallowed.
    """
    
    def __init__(
        self,
        session_factory: async_sessionmaker,
        events: Optional[RedisCache] = None,
        demotion_step: int = None,
        priority_floor: int = None,
        severe_to_floor: bool = None,
        provider_step: int = None
    ):
        self.session_factory = session_factory
        self.events = events
        self.demotion_step = demotion_step or settings.demotion_step
        self.priority_floor = settings.priority_floor if priority_floor is None else priority_floor
        self.severe_to_floor = settings.severe_demotion_to_floor if severe_to_floor is None else severe_to_floor
        self.provider_step = provider_step or settings.provider_demotion_step
    
    def demoted_priority(self, severity: FailureSeverity):
        """SQL expression for a credential's priority after a failure."""
        floor = self.priority_floor
        current = Credential.priority
        
        if self.severe_to_floor and severity is not FailureSeverity.UPSTREAM_ERROR:
            return case((current > floor, floor), else_=current)
        
        return case(
            (current - self.demotion_step > floor, current - self.demotion_step),
            (current > floor, floor),
            else_=current
        )
    
    async def record_success(self, credential_id: int) -> None:
        """Count a successful attempt and clear the credential's last error."""
        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(Credential)
                    .where(Credential.id == credential_id)
                    .values(
                        total_requests=Credential.total_requests + 1,
                        last_error=None,
                        last_used_at=datetime.utcnow()
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except Exception as e:
            logger.error("Failed to record credential success", credential_id=credential_id, error=str(e))
            return
        
        await self._notify(API_KEYS_UPDATE, {"id": credential_id})
    
    async def record_failure(
        self,
        credential_id: int,
        provider_id: int,
        message: str,
        severity: FailureSeverity
    ) -> bool:
        """
        Count a failed attempt, demote the credential and cascade to its provider.
        
        Returns:
            True if the provider was demoted as well
        """
        provider_demoted = False
        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(Credential)
                    .where(Credential.id == credential_id)
                    .values(
                        failed_requests=Credential.failed_requests + 1,
                        last_error=message,
                        last_used_at=datetime.utcnow(),
                        priority=self.demoted_priority(severity)
                    )
                    .execution_options(synchronize_session=False)
                )
                
                healthy = await session.scalar(
                    select(func.count(Credential.id)).where(
                        Credential.provider_id == provider_id,
                        Credential.is_active == True,  # noqa: E712
                        Credential.priority > self.priority_floor
                    )
                )
                
                if not healthy:
                    result = await session.execute(
                        update(Provider)
                        .where(Provider.id == provider_id, Provider.priority > 0)
                        .values(priority=case(
                            (Provider.priority - self.provider_step > 0, Provider.priority - self.provider_step),
                            else_=0
                        ))
                        .execution_options(synchronize_session=False)
                    )
                    provider_demoted = result.rowcount > 0
                
                await session.commit()
        except Exception as e:
            logger.error(
                "Failed to record credential failure",
                credential_id=credential_id,
                provider_id=provider_id,
                error=str(e)
            )
            return False
        
        logger.info(
            "Credential demoted",
            credential_id=credential_id,
            severity=severity.value,
            provider_demoted=provider_demoted
        )
        
        await self._notify(API_KEYS_UPDATE, {"id": credential_id})
        if provider_demoted:
            await self._notify(PROVIDERS_UPDATE, {"id": provider_id})
        return provider_demoted
    
    async def annotate(self, credential_id: int, error: Optional[str]) -> None:
        """
        Record a key test outcome without touching counters or priority.
        
        ``error=None`` clears ``last_error`` and stamps ``last_used_at``.
        """
        values = {"last_error": error}
        if error is None:
            values["last_used_at"] = datetime.utcnow()
        
        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(Credential).where(Credential.id == credential_id).values(**values)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except Exception as e:
            logger.error("Failed to annotate credential", credential_id=credential_id, error=str(e))
            return
        
        await self._notify(API_KEYS_UPDATE, {"id": credential_id})
    
    async def restore(self, credential_id: int, priority: int = None) -> bool:
        """
        Explicit recovery: set a credential's priority and clear its last error.
        
        Returns:
            False if the credential does not exist
        """
        priority = settings.recovery_priority if priority is None else priority
        
        async with self.session_factory() as session:
            result = await session.execute(
                update(Credential)
                .where(Credential.id == credential_id)
                .values(priority=priority, last_error=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        
        if not result.rowcount:
            return False
        
        logger.info("Credential priority restored", credential_id=credential_id, priority=priority)
        await self._notify(API_KEYS_UPDATE, {"id": credential_id})
        return True
    
    async def _notify(self, event: str, data: dict) -> None:
        if self.events:
            await self.events.publish(event, data)
