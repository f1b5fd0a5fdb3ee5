"""
Candidate ordering tests.
"""
import pytest

from keyhub.models import Credential, Provider, RotationStrategy, VendorKind
from keyhub.services.selector import (
    CandidateSelector,
    RotationPolicy,
    RoutingSnapshot,
    order_candidates
)


def make_provider(provider_id, priority, is_active=True, default_model=None):
    return Provider(
        id=provider_id,
        name=f"provider-{provider_id}",
        vendor_kind=VendorKind.OPENAI_COMPATIBLE,
        priority=priority,
        is_active=is_active,
        default_model=default_model
    )


def make_credential(credential_id, provider_id, priority, model_id=None, is_active=True):
    return Credential(
        id=credential_id,
        provider_id=provider_id,
        api_key=f"secret-{credential_id}",
        priority=priority,
        model_id=model_id,
        is_active=is_active
    )


def snapshot(providers, credentials, models=None, strategy=RotationStrategy.PER_PROVIDER, fallback=True):
    supported = models
    if supported is None:
        supported = {p.id: {"m"} for p in providers}
    return RoutingSnapshot(
        providers=providers,
        credentials=credentials,
        supported_models=supported,
        policy=RotationPolicy(strategy=strategy, fallback_enabled=fallback)
    )


def ids(candidates):
    return [c.credential.id for c in candidates]


class TestOrderCandidates:
    """Pure ordering over a snapshot."""
    
    def test_per_provider_keeps_groups_contiguous(self):
        providers = [make_provider(1, 50), make_provider(2, 100)]
        credentials = [
            make_credential(11, 1, 90),
            make_credential(12, 1, 5),
            make_credential(21, 2, 10),
            make_credential(22, 2, 30),
        ]
        
        result = order_candidates("m", snapshot(providers, credentials))
        
        assert ids(result) == [22, 21, 11, 12]
        assert [c.provider.id for c in result] == [2, 2, 1, 1]
    
    def test_global_is_stable_sort_by_credential_priority(self):
        providers = [make_provider(1, 100), make_provider(2, 90)]
        credentials = [
            make_credential(11, 1, 10),
            make_credential(12, 1, 40),
            make_credential(21, 2, 40),
            make_credential(22, 2, 20),
        ]
        
        result = order_candidates("m", snapshot(providers, credentials, strategy=RotationStrategy.GLOBAL))
        
        # 12 and 21 tie on 40; provider order breaks the tie
        assert ids(result) == [12, 21, 22, 11]
    
    def test_equal_priorities_fall_back_to_id(self):
        providers = [make_provider(2, 10), make_provider(1, 10)]
        credentials = [make_credential(21, 2, 1), make_credential(11, 1, 1), make_credential(10, 1, 1)]
        
        result = order_candidates("m", snapshot(providers, credentials))
        
        assert ids(result) == [10, 11, 21]
    
    def test_fallback_disabled_keeps_only_first_provider(self):
        providers = [make_provider(1, 100), make_provider(2, 90)]
        credentials = [make_credential(11, 1, 0), make_credential(21, 2, 100)]
        
        result = order_candidates("m", snapshot(providers, credentials, fallback=False))
        
        assert ids(result) == [11]
    
    def test_fallback_disabled_with_exhausted_first_provider_selects_nothing(self):
        providers = [make_provider(1, 100), make_provider(2, 90)]
        credentials = [make_credential(11, 1, 10, is_active=False), make_credential(21, 2, 100)]
        
        result = order_candidates("m", snapshot(providers, credentials, fallback=False))
        
        assert result == []
    
    def test_model_filter_on_provider_membership(self):
        providers = [make_provider(1, 100), make_provider(2, 90)]
        credentials = [make_credential(11, 1, 10), make_credential(21, 2, 10)]
        
        result = order_candidates("m", snapshot(providers, credentials, models={2: {"m"}}))
        
        assert ids(result) == [21]
    
    def test_credential_model_restriction(self):
        providers = [make_provider(1, 100)]
        credentials = [
            make_credential(11, 1, 50, model_id="other"),
            make_credential(12, 1, 40, model_id="m"),
            make_credential(13, 1, 30),
        ]
        
        result = order_candidates("m", snapshot(providers, credentials))
        
        assert ids(result) == [12, 13]
    
    def test_inactive_entries_are_skipped(self):
        providers = [make_provider(1, 100, is_active=False), make_provider(2, 90)]
        credentials = [
            make_credential(11, 1, 10),
            make_credential(21, 2, 10, is_active=False),
            make_credential(22, 2, 5),
        ]
        
        result = order_candidates("m", snapshot(providers, credentials))
        
        assert ids(result) == [22]
    
    def test_no_model_skips_membership_filter(self):
        providers = [make_provider(1, 100)]
        credentials = [make_credential(11, 1, 10, model_id="anything")]
        
        result = order_candidates(None, snapshot(providers, credentials, models={}))
        
        assert ids(result) == [11]
    
    def test_no_model_checks_restrictions_against_provider_default(self):
        providers = [make_provider(1, 100, default_model="m"), make_provider(2, 50)]
        credentials = [
            make_credential(11, 1, 30, model_id="other"),
            make_credential(12, 1, 20, model_id="m"),
            make_credential(13, 1, 10),
            make_credential(21, 2, 10, model_id="other"),
        ]
        
        result = order_candidates(None, snapshot(providers, credentials, models={}))
        
        assert ids(result) == [12, 13, 21]
    
    def test_no_model_falls_back_to_gateway_default(self):
        providers = [make_provider(1, 100)]
        credentials = [make_credential(11, 1, 20, model_id="other"), make_credential(12, 1, 10, model_id="g")]
        
        result = order_candidates(None, snapshot(providers, credentials, models={}), default_model="g")
        
        assert ids(result) == [12]


@pytest.mark.asyncio
class TestCandidateSelector:
    """Selection against the database."""
    
    async def test_reads_snapshot_from_storage(self, session_factory, seed_provider):
        low = await seed_provider("low", priority=10, credentials=[{"priority": 5}])
        high = await seed_provider("high", priority=90, credentials=[{"priority": 1}, {"priority": 7}])
        await seed_provider("other-model", priority=100, models=["claude"])
        
        candidates = await CandidateSelector(session_factory).select_candidates("gpt-4o-mini")
        
        assert [c.provider.id for c in candidates] == [high.id, high.id, low.id]
        assert [c.credential.priority for c in candidates] == [7, 1, 5]
    
    async def test_unknown_model_yields_empty_list(self, session_factory, seed_provider):
        await seed_provider("only", models=["gpt-4o-mini"])
        
        assert await CandidateSelector(session_factory).select_candidates("no-such-model") == []
    
    async def test_rotation_settings_row_is_honoured(self, session_factory, seed_provider, seed_rotation):
        first = await seed_provider("first", priority=90)
        await seed_provider("second", priority=10)
        await seed_rotation(RotationStrategy.GLOBAL, fallback_enabled=False)
        
        selector = CandidateSelector(session_factory)
        policy = await selector.get_rotation_policy()
        candidates = await selector.select_candidates("gpt-4o-mini")
        
        assert policy == RotationPolicy(strategy=RotationStrategy.GLOBAL, fallback_enabled=False)
        assert [c.provider.id for c in candidates] == [first.id]
    
    async def test_policy_defaults_without_settings_row(self, session_factory):
        policy = await CandidateSelector(session_factory).get_rotation_policy()
        
        assert policy.strategy == RotationStrategy.PER_PROVIDER
        assert policy.fallback_enabled is True
