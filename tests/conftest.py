"""
Pytest configuration and shared fixtures.
"""
from typing import Any, Dict, List, Optional, Sequence

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import keyhub.models  # noqa: F401  registers tables on Base.metadata
from keyhub.api.dependencies import get_database, get_http_client, get_session_factory
from keyhub.core.database import Base
from keyhub.main import app
from keyhub.models import Credential, Provider, ProviderModel, RotationSettings, VendorKind
from tests.fakes import FakeUpstream


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Throwaway SQLite file database, one per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'keyhub-test.db'}",
        poolclass=NullPool,
        echo=False
    )
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def seed_provider(session_factory):
    """
    Insert a provider with its models and credentials.
    
    ``credentials`` is a list of dicts of Credential column values; ``name``
    defaults to ``<provider>-key-<n>`` and ``api_key`` to the same string.
    """
    async def _seed(
        name: str,
        vendor_kind: VendorKind = VendorKind.OPENAI_COMPATIBLE,
        priority: int = 0,
        models: Sequence[str] = ("gpt-4o-mini",),
        credentials: Optional[List[Dict[str, Any]]] = None,
        default_model: Optional[str] = None,
        is_active: bool = True,
        base_url: Optional[str] = None
    ) -> Provider:
        provider = Provider(
            name=name,
            vendor_kind=vendor_kind,
            priority=priority,
            default_model=default_model,
            is_active=is_active,
            base_url=base_url,
        )
        provider.models = [ProviderModel(model_id=model_id) for model_id in models]
        
        provider.credentials = []
        for index, values in enumerate(credentials if credentials is not None else [{}], start=1):
            values = dict(values)
            values.setdefault("name", f"{name}-key-{index}")
            values.setdefault("api_key", values["name"])
            values.setdefault("priority", 10)
            provider.credentials.append(Credential(**values))
        
        async with session_factory() as session:
            session.add(provider)
            await session.commit()
        return provider
    
    return _seed


@pytest.fixture
def seed_rotation(session_factory):
    async def _seed(strategy, fallback_enabled: bool = True) -> None:
        async with session_factory() as session:
            session.add(RotationSettings(strategy=strategy, fallback_enabled=fallback_enabled))
            await session.commit()
    
    return _seed


@pytest.fixture
def load_credential(session_factory):
    async def _load(credential_id: int) -> Credential:
        async with session_factory() as session:
            return await session.get(Credential, credential_id)
    
    return _load


@pytest.fixture
def load_provider(session_factory):
    async def _load(provider_id: int) -> Provider:
        async with session_factory() as session:
            return await session.get(Provider, provider_id)
    
    return _load


# ============================================================================
# Upstream fakes
# ============================================================================

@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest_asyncio.fixture
async def upstream_client(upstream):
    async with upstream.client() as client:
        yield client


# ============================================================================
# Application client
# ============================================================================

@pytest_asyncio.fixture
async def test_client(session_factory, upstream_client):
    """ASGI client with storage and upstream swapped for the fakes."""
    async def override_get_database():
        async with session_factory() as session:
            yield session
    
    async def override_get_http_client():
        yield upstream_client
    
    app.dependency_overrides[get_database] = override_get_database
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_http_client] = override_get_http_client
    
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    
    app.dependency_overrides.clear()
