"""
Adapter Configuration
Central place to configure the commerce platform, the ONDC identity of this BPP
and the retry/timeout budget for platform calls and callbacks
"""
from enum import Enum
from pydantic_settings import BaseSettings
from typing import Optional

class CommerceProvider(str, Enum):
    """Commerce platform options"""
    WOOCOMMERCE = "woocommerce"          # WooCommerce REST API (wc/v3)
    SANDBOX = "sandbox"                  # In-memory store for local development

class Settings(BaseSettings):
    """Application Settings"""

    # ============================================
    # COMMERCE PLATFORM
    # ============================================

    COMMERCE_PROVIDER: CommerceProvider = CommerceProvider.WOOCOMMERCE

    WOO_BASE_URL: str = "https://your-store.example.com"
    WOO_CONSUMER_KEY: Optional[str] = None
    WOO_CONSUMER_SECRET: Optional[str] = None
    WOO_API_VERSION: str = "wc/v3"

    # Seconds allowed for a single platform call
    PLATFORM_TIMEOUT: float = 30.0
    PLATFORM_RETRY_COUNT: int = 3
    PLATFORM_RETRY_DELAY: float = 1.0
    PLATFORM_BACKOFF_MULTIPLIER: float = 2.0

    # ============================================
    # ONDC IDENTITY AND CALLBACKS
    # ============================================

    BPP_ID: str = "woocommerce.bpp.example.com"
    BPP_URI: str = "https://woocommerce-adaptor.example.com"
    PROVIDER_ID: str = "WooCommerce_Store"

    # Seconds allowed for a single on_<action> delivery attempt
    CALLBACK_TIMEOUT: float = 10.0
    CALLBACK_RETRY_COUNT: int = 3
    CALLBACK_RETRY_DELAY: float = 5.0
    CALLBACK_BACKOFF_MULTIPLIER: float = 2.0

    # Buyer-side cancellation reasons accepted on /cancel
    CANCELLATION_REASON_CODES: list[str] = [
        "001", "002", "003", "004", "005", "006",
        "009", "010", "011", "012", "013", "014", "015", "016",
    ]

    # ============================================
    # STORE DETAILS (used in catalog and fulfillment blocks)
    # ============================================

    STORE_NAME: str = "WooCommerce Store"
    STORE_GPS: str = "12.956399,77.636803"
    STORE_LOCALITY: str = "Main Street"
    STORE_CITY: str = "Bengaluru"
    STORE_AREA_CODE: str = "560076"
    STORE_STATE: str = "Karnataka"
    STORE_PHONE: str = "9999999999"
    STORE_EMAIL: str = "store@example.com"

    # GST applied to the item subtotal on select
    TAX_RATE: float = 0.18

    # ============================================
    # APPLICATION SETTINGS
    # ============================================

    APP_NAME: str = "ONDC WooCommerce Adapter"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True

# Global settings instance
settings = Settings()

def get_provider_info() -> dict:
    """Get current platform and network identity"""
    return {
        "commerce_provider": settings.COMMERCE_PROVIDER.value,
        "platform_url": settings.WOO_BASE_URL,
        "bpp_id": settings.BPP_ID,
        "bpp_uri": settings.BPP_URI,
        "callback_retry_count": settings.CALLBACK_RETRY_COUNT,
    }
