"""
Commerce Platform Interface
Abstract base class for the order/catalog platforms behind the adapter (WooCommerce, sandbox)
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Optional
import logging

logger = logging.getLogger(__name__)

def meta_value(record: Dict, key: str) -> Optional[str]:
    """Read a value from a WooCommerce-style meta_data list"""
    for meta in record.get("meta_data") or []:
        if meta.get("key") == key:
            return meta.get("value")
    return None

class CommercePlatform(ABC):
    """
    Abstract interface for commerce platforms

    Records use the WooCommerce REST shape (status, line_items, billing,
    shipping, meta_data). Implementations raise TransientUpstreamError for
    failures worth retrying and PlatformRejection for explicit 4xx answers.
    """

    @abstractmethod
    async def get_order(self, order_id: str) -> Dict:
        """
        Get order by ID

        Raises:
            PlatformRejection: with status 404 when the order does not exist
        """
        pass

    @abstractmethod
    async def create_order(self, data: Dict) -> Dict:
        """
        Create a new order

        Returns:
            Created order record including its platform id
        """
        pass

    @abstractmethod
    async def update_order(self, order_id: str, patch: Dict) -> Dict:
        """
        Apply a partial update to an order

        `meta_data` entries in the patch replace entries with the same key
        and are appended otherwise.

        Returns:
            Updated order record
        """
        pass

    @abstractmethod
    async def find_orders_by_meta(self, key: str, value: str) -> List[Dict]:
        """
        Find orders carrying a meta_data entry

        Returns:
            Matching orders, newest first
        """
        pass

    @abstractmethod
    async def find_product_by_sku(self, sku: str) -> Optional[Dict]:
        """Get product by SKU, or None when absent"""
        pass

    @abstractmethod
    async def create_product(self, data: Dict) -> Dict:
        """Create a new product"""
        pass

    @abstractmethod
    async def list_products(self, filters: Optional[Dict] = None) -> List[Dict]:
        """
        List published products

        Args:
            filters: Optional filters (category, stock_status, ...)

        Returns:
            All matching product records
        """
        pass

    @abstractmethod
    async def get_product(self, product_id: str) -> Dict:
        """
        Get product by ID

        Raises:
            PlatformRejection: with status 404 when the product does not exist
        """
        pass

    async def test_connection(self) -> bool:
        """Reachability check run once at startup"""
        # Default implementation: list products and report whether it worked
        try:
            await self.list_products({"per_page": 1})
            return True
        except Exception as e:
            logger.error(f"Commerce platform unreachable: {e}")
            return False
