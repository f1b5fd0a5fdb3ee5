"""
Database models for providers, credentials, settings and usage logs.
"""
from keyhub.models.provider import Provider, ProviderModel, Credential, VendorKind
from keyhub.models.settings import RotationSettings, RotationStrategy
from keyhub.models.usage_log import UsageLog
from keyhub.models.unified_key import UnifiedApiKey

__all__ = [
    "Provider",
    "ProviderModel",
    "Credential",
    "VendorKind",
    "RotationSettings",
    "RotationStrategy",
    "UsageLog",
    "UnifiedApiKey",
]
