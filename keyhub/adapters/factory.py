"""
Adapter factory dispatching on a provider's vendor kind.
"""
from typing import Dict, Type

from keyhub.adapters.base import VendorAdapter, AdapterConfig
from keyhub.adapters.openai import OpenAICompatibleAdapter
from keyhub.adapters.anthropic import AnthropicAdapter
from keyhub.adapters.gemini import GeminiAdapter
from keyhub.models.provider import Provider, VendorKind


class AdapterFactory:
    """Factory for creating vendor adapters."""
    
    # Closed registry: one adapter per vendor kind
    _adapters: Dict[VendorKind, Type[VendorAdapter]] = {
        VendorKind.GOOGLE: GeminiAdapter,
        VendorKind.ANTHROPIC: AnthropicAdapter,
        VendorKind.OPENAI_COMPATIBLE: OpenAICompatibleAdapter,
    }
    
    @classmethod
    def create_adapter(
        cls,
        vendor_kind: VendorKind,
        base_url: str = None,
        default_model: str = None
    ) -> VendorAdapter:
        """
        Create an adapter instance.
        
        Args:
            vendor_kind: Vendor kind of the provider
            base_url: Optional base URL override
            default_model: Model used when the caller names none
            
        Returns:
            Adapter instance
            
        Raises:
            ValueError: If vendor kind is not supported
        """
        kind = VendorKind(vendor_kind)
        adapter_class = cls._adapters.get(kind)
        if adapter_class is None:
            raise ValueError(
                f"Unsupported vendor kind: {vendor_kind}. "
                f"Available kinds: {', '.join(k.value for k in cls._adapters)}"
            )
        return adapter_class(AdapterConfig(base_url=base_url, default_model=default_model))
    
    @classmethod
    def for_provider(cls, provider: Provider) -> VendorAdapter:
        """Create the adapter configured for a provider row."""
        return cls.create_adapter(
            vendor_kind=provider.vendor_kind,
            base_url=provider.base_url,
            default_model=provider.default_model,
        )
    
    @classmethod
    def get_supported_kinds(cls) -> list[str]:
        return [kind.value for kind in cls._adapters]
