"""
Vendor adapters translating canonical chat requests to vendor wire formats.
"""
from keyhub.adapters.base import VendorAdapter, AdapterConfig, UpstreamRequest, ParsedCompletion
from keyhub.adapters.factory import AdapterFactory

__all__ = [
    "VendorAdapter",
    "AdapterConfig",
    "UpstreamRequest",
    "ParsedCompletion",
    "AdapterFactory",
]
