"""
Opt-in recovery loop that lifts demoted credentials once they work again.
"""
import asyncio
from typing import Dict, List

import httpx
from sqlalchemy import select

from keyhub.core.cache import cache
from keyhub.core.config import settings
from keyhub.core.database import AsyncSessionLocal
from keyhub.core.logger import get_logger
from keyhub.models.provider import Provider, Credential
from keyhub.services.health import HealthTracker
from keyhub.services.key_tester import KeyTester
from keyhub.services.usage_logger import UsageLogger

logger = get_logger(__name__)


class RecoveryService:
    """
    Periodically re-tests credentials sitting at or below the priority floor.
    
    A credential whose test succeeds is restored to ``recovery_priority``.
    This is the only automatic path by which a priority goes up. Provider
    priorities are not touched here.
    """
    
    def __init__(self, session_factory=None, events=None, transport: httpx.AsyncBaseTransport = None):
        self.session_factory = session_factory or AsyncSessionLocal
        self.events = events
        self.transport = transport
        self.check_interval = settings.recovery_interval
        self.recovery_priority = settings.recovery_priority
        self.health = HealthTracker(self.session_factory, events)
    
    async def start(self):
        """Start the recovery loop."""
        logger.info(f"Starting credential recovery service (interval: {self.check_interval}s)")
        
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Recovery loop error: {str(e)}", exc_info=True)
            
            await asyncio.sleep(self.check_interval)
    
    async def demoted_credentials(self) -> List[tuple[Credential, Provider]]:
        async with self.session_factory() as session:
            rows = (await session.execute(
                select(Credential, Provider)
                .join(Provider, Provider.id == Credential.provider_id)
                .where(
                    Credential.is_active == True,  # noqa: E712
                    Provider.is_active == True,  # noqa: E712
                    Credential.priority <= self.health.priority_floor
                )
                .order_by(Credential.id)
            )).all()
        return [(credential, provider) for credential, provider in rows]
    
    async def run_once(self) -> List[Dict]:
        """Re-test every demoted credential once; returns per-credential results."""
        demoted = await self.demoted_credentials()
        if not demoted:
            logger.debug("No demoted credentials to re-test")
            return []
        
        logger.info(f"Probing {len(demoted)} demoted credentials")
        results = []
        
        async with httpx.AsyncClient(transport=self.transport) as client:
            tester = KeyTester(
                self.session_factory,
                self.health,
                UsageLogger(self.session_factory, self.events),
                client
            )
            # Sequential on purpose: tests are billed calls
            for credential, provider in demoted:
                outcome = await tester.test(credential, provider)
                restored = False
                if outcome.success:
                    restored = await self.health.restore(credential.id, self.recovery_priority)
                results.append({
                    "credential_id": credential.id,
                    "provider": provider.name,
                    "status": outcome.status,
                    "restored": restored,
                })
        
        return results


async def start_recovery_service():
    """Start the recovery service as a background task."""
    if settings.recovery_enabled:
        await RecoveryService(events=cache).start()
    else:
        logger.info("Credential recovery service is disabled")
