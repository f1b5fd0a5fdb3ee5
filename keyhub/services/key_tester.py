"""
Credential tester: one tiny prompt through the credential's own adapter.
"""
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from keyhub.adapters.factory import AdapterFactory
from keyhub.api.schemas import ChatCompletionRequest, ChatMessage, MessageRole
from keyhub.core.config import settings
from keyhub.core.exceptions import FailureSeverity, UpstreamError
from keyhub.core.logger import get_logger
from keyhub.models.provider import Provider, ProviderModel, Credential
from keyhub.services.health import HealthTracker
from keyhub.services.upstream import call_upstream
from keyhub.services.usage_logger import AttemptRecord, UsageLogger

logger = get_logger(__name__)

TEST_KEY_PATH = "/api/test-key"
TEST_PROMPT = 'Say "Hello, I am working!" in 5 words or less.'


@dataclass
class KeyTestResult:
    """Outcome of a credential test."""
    success: bool
    status: str  # active, invalid, quota_exceeded, provider_error, error
    response_time_ms: int
    status_code: Optional[int] = None
    error: Optional[str] = None


def status_label_for(error: UpstreamError) -> str:
    """Map a failed key test to the status label shown in the key list."""
    severity = error.severity
    if severity is FailureSeverity.QUOTA_EXCEEDED:
        return "quota_exceeded"
    if severity is FailureSeverity.INVALID_CREDENTIAL:
        return "invalid"
    if error.status_code >= 500:
        return "provider_error"
    return "error"


class KeyTester:
    """
    Tests a single credential.
    
    A key test annotates ``last_error`` and writes a usage row but never moves
    priority or counters; demotion belongs to real traffic only.
    """
    
    def __init__(
        self,
        session_factory: async_sessionmaker,
        health: HealthTracker,
        usage: UsageLogger,
        client: httpx.AsyncClient,
        timeout: float = None
    ):
        self.session_factory = session_factory
        self.health = health
        self.usage = usage
        self.client = client
        self.timeout = timeout or settings.upstream_timeout
    
    async def load(self, credential_id: int) -> Optional[tuple[Credential, Provider]]:
        """Fetch a credential with its provider."""
        async with self.session_factory() as session:
            row = (await session.execute(
                select(Credential, Provider)
                .join(Provider, Provider.id == Credential.provider_id)
                .where(Credential.id == credential_id)
            )).first()
        return (row[0], row[1]) if row else None
    
    async def first_model(self, provider_id: int) -> Optional[str]:
        async with self.session_factory() as session:
            return await session.scalar(
                select(ProviderModel.model_id)
                .where(ProviderModel.provider_id == provider_id, ProviderModel.is_active == True)  # noqa: E712
                .order_by(ProviderModel.id)
                .limit(1)
            )
    
    async def test(
        self,
        credential: Credential,
        provider: Provider,
        model: Optional[str] = None
    ) -> KeyTestResult:
        """
        Send the test prompt through ``credential``.
        
        Args:
            credential: Credential to test
            provider: Its provider
            model: Model override; defaults to the credential's restriction,
                then the provider default, then the provider's first
                listed model, then the global default
        """
        adapter = AdapterFactory.for_provider(provider)
        check = ChatCompletionRequest(
            model=model or credential.model_id,
            messages=[ChatMessage(role=MessageRole.USER, content=TEST_PROMPT)],
            max_tokens=50,
            temperature=0.1,
        )
        resolved_model = adapter.resolve_model(check) or await self.first_model(provider.id) or settings.default_model
        if not resolved_model:
            return KeyTestResult(
                success=False,
                status="error",
                response_time_ms=0,
                error="No model to test with: set a model on the key or a provider default",
            )
        
        start = time.monotonic()
        try:
            parsed = await call_upstream(
                self.client, adapter, check, credential.api_key, resolved_model, self.timeout
            )
        except UpstreamError as e:
            response_time_ms = int((time.monotonic() - start) * 1000)
            logger.info(
                "Credential test failed",
                credential_id=credential.id,
                provider=provider.name,
                status_code=e.status_code
            )
            await self.health.annotate(credential.id, e.message)
            await self.usage.record(AttemptRecord(
                provider_id=provider.id,
                credential_id=credential.id,
                model_name=resolved_model,
                status="error",
                status_code=e.status_code,
                error_message=e.message,
                response_time_ms=response_time_ms,
                request_path=TEST_KEY_PATH,
                provider_name=provider.name,
                api_key_name=credential.display_name,
            ))
            return KeyTestResult(
                success=False,
                status=status_label_for(e),
                response_time_ms=response_time_ms,
                status_code=e.status_code,
                error=e.message,
            )
        
        response_time_ms = int((time.monotonic() - start) * 1000)
        logger.info("Credential test passed", credential_id=credential.id, provider=provider.name)
        await self.health.annotate(credential.id, None)
        await self.usage.record(AttemptRecord(
            provider_id=provider.id,
            credential_id=credential.id,
            model_name=resolved_model,
            status="success",
            status_code=200,
            response_time_ms=response_time_ms,
            tokens_used=parsed.tokens_used,
            request_path=TEST_KEY_PATH,
            provider_name=provider.name,
            api_key_name=credential.display_name,
        ))
        return KeyTestResult(
            success=True,
            status="active",
            response_time_ms=response_time_ms,
            status_code=200,
        )
