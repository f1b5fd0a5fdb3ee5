"""
Candidate selection: which (provider, credential) pairs may serve a model, in order.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from keyhub.core.cache import RedisCache, rotation_settings_cache_key
from keyhub.core.config import settings
from keyhub.core.logger import get_logger
from keyhub.models.provider import Provider, ProviderModel, Credential
from keyhub.models.settings import RotationSettings, RotationStrategy

logger = get_logger(__name__)


@dataclass(frozen=True)
class Candidate:
    """One provider/credential pairing, valid for a single routing decision."""
    provider: Provider
    credential: Credential


@dataclass(frozen=True)
class RotationPolicy:
    """Read-only view of the rotation settings for one request."""
    strategy: RotationStrategy = RotationStrategy.PER_PROVIDER
    fallback_enabled: bool = True


@dataclass
class RoutingSnapshot:
    """Active providers and credentials as read at the start of a request."""
    providers: List[Provider]
    credentials: List[Credential]
    supported_models: Dict[int, Set[str]] = field(default_factory=dict)
    policy: RotationPolicy = field(default_factory=RotationPolicy)


def _credential_matches(credential: Credential, model: Optional[str]) -> bool:
    if not model:
        return True
    return not credential.model_id or credential.model_id == model


def order_candidates(
    model: Optional[str],
    snapshot: RoutingSnapshot,
    default_model: Optional[str] = None
) -> List[Candidate]:
    """
    Build the ordered candidate list for ``model``.
    
    Without a requested model, credential restrictions are checked against
    the model the attempt will actually send: the provider's default, else
    ``default_model``.
    
    Providers are ordered by priority descending then id; credentials inside
    a provider likewise. ``per_provider`` keeps provider groups contiguous,
    ``global`` re-sorts the concatenation by credential priority (stable, so
    equal priorities keep provider order). Without fallback only the first
    provider survives.
    """
    providers = [p for p in snapshot.providers if p.is_active]
    if model:
        providers = [
            p for p in providers
            if model in snapshot.supported_models.get(p.id, set())
        ]
    providers.sort(key=lambda p: (-p.priority, p.id))
    
    if not snapshot.policy.fallback_enabled:
        providers = providers[:1]
    
    ordered: List[Candidate] = []
    for provider in providers:
        effective_model = model or provider.default_model or default_model
        credentials = [
            c for c in snapshot.credentials
            if c.provider_id == provider.id and c.is_active and _credential_matches(c, effective_model)
        ]
        credentials.sort(key=lambda c: (-c.priority, c.id))
        ordered.extend(Candidate(provider=provider, credential=c) for c in credentials)
    
    if snapshot.policy.strategy == RotationStrategy.GLOBAL:
        ordered.sort(key=lambda c: -c.credential.priority)
    
    return ordered


class CandidateSelector:
    """
    Reads the routing snapshot from storage and orders candidates.
    
    The rotation settings are cached in Redis for a few seconds since they
    are read on every request and change rarely.
    """
    
    def __init__(self, session_factory: async_sessionmaker, cache: Optional[RedisCache] = None):
        self.session_factory = session_factory
        self.cache = cache
    
    async def select_candidates(self, model: Optional[str]) -> List[Candidate]:
        """Return ordered candidates for ``model``; empty means no route."""
        snapshot = await self.load_snapshot(model)
        candidates = order_candidates(model, snapshot, settings.default_model)
        
        logger.info(
            "Candidates selected",
            model=model,
            strategy=snapshot.policy.strategy.value,
            fallback_enabled=snapshot.policy.fallback_enabled,
            count=len(candidates)
        )
        return candidates
    
    async def load_snapshot(self, model: Optional[str]) -> RoutingSnapshot:
        policy = await self.get_rotation_policy()
        
        async with self.session_factory() as session:
            providers = list((await session.execute(
                select(Provider)
                .where(Provider.is_active == True)  # noqa: E712
                .order_by(Provider.priority.desc(), Provider.id)
            )).scalars().all())
            
            provider_ids = [p.id for p in providers]
            credentials: List[Credential] = []
            supported: Dict[int, Set[str]] = {}
            
            if provider_ids:
                credentials = list((await session.execute(
                    select(Credential)
                    .where(
                        Credential.provider_id.in_(provider_ids),
                        Credential.is_active == True  # noqa: E712
                    )
                    .order_by(Credential.priority.desc(), Credential.id)
                )).scalars().all())
                
                if model:
                    rows = await session.execute(
                        select(ProviderModel.provider_id, ProviderModel.model_id)
                        .where(
                            ProviderModel.provider_id.in_(provider_ids),
                            ProviderModel.model_id == model,
                            ProviderModel.is_active == True  # noqa: E712
                        )
                    )
                    for provider_id, model_id in rows.all():
                        supported.setdefault(provider_id, set()).add(model_id)
        
        return RoutingSnapshot(
            providers=providers,
            credentials=credentials,
            supported_models=supported,
            policy=policy,
        )
    
    async def get_rotation_policy(self) -> RotationPolicy:
        """Read the rotation settings singleton, defaulting when absent."""
        if self.cache:
            cached = await self.cache.get(rotation_settings_cache_key())
            if cached:
                return RotationPolicy(
                    strategy=RotationStrategy(cached["strategy"]),
                    fallback_enabled=bool(cached["fallback_enabled"]),
                )
        
        async with self.session_factory() as session:
            row = await load_rotation_settings(session)
        
        policy = RotationPolicy() if row is None else RotationPolicy(
            strategy=RotationStrategy(row.strategy),
            fallback_enabled=bool(row.fallback_enabled),
        )
        
        if self.cache:
            await self.cache.set(
                rotation_settings_cache_key(),
                {"strategy": policy.strategy.value, "fallback_enabled": policy.fallback_enabled}
            )
        return policy


async def load_rotation_settings(session: AsyncSession) -> Optional[RotationSettings]:
    """Fetch the rotation settings row, if one has been created."""
    result = await session.execute(
        select(RotationSettings).order_by(RotationSettings.id).limit(1)
    )
    return result.scalar_one_or_none()
