"""
Commerce Platform Factory
Selects the order/catalog platform behind the adapter from settings
"""
from typing import Optional

from ondc_adapter.config import settings, CommerceProvider
from ondc_adapter.commerce.interface import CommercePlatform
from ondc_adapter.commerce.woocommerce_backend import WooCommerceBackend
from ondc_adapter.commerce.sandbox_backend import SandboxBackend

class CommerceFactory:
    """Factory for creating commerce platform instances"""

    @staticmethod
    def create_backend(provider: Optional[CommerceProvider] = None) -> CommercePlatform:
        """
        Create commerce platform instance

        Args:
            provider: Commerce provider (defaults to COMMERCE_PROVIDER)

        Returns:
            CommercePlatform instance
        """
        if provider is None:
            provider = settings.COMMERCE_PROVIDER

        if provider == CommerceProvider.WOOCOMMERCE:
            return WooCommerceBackend()
        elif provider == CommerceProvider.SANDBOX:
            return SandboxBackend()
        else:
            raise ValueError(f"Unsupported commerce provider: {provider}")

# Singleton instance
_commerce_backend: Optional[CommercePlatform] = None

def get_commerce_backend() -> CommercePlatform:
    """
    Get or create commerce platform instance
    This is the only entry point pipelines use to reach the platform
    """
    global _commerce_backend
    if _commerce_backend is None:
        _commerce_backend = CommerceFactory.create_backend()
    return _commerce_backend
