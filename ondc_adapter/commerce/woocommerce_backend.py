"""
WooCommerce Commerce Platform Implementation
Implements CommercePlatform against the WooCommerce REST API (wc/v3)
"""
from typing import List, Dict, Optional
import logging

import httpx

from ondc_adapter.config import settings
from ondc_adapter.commerce.interface import CommercePlatform, meta_value
from ondc_adapter.core.errors import PlatformRejection, TransientUpstreamError

logger = logging.getLogger(__name__)

PAGE_SIZE = 100

class WooCommerceBackend(CommercePlatform):
    """WooCommerce implementation of CommercePlatform"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        consumer_key: Optional[str] = None,
        consumer_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        base_url = (base_url or settings.WOO_BASE_URL).rstrip("/")
        self.api_url = f"{base_url}/wp-json/{settings.WOO_API_VERSION}/"
        self.consumer_key = consumer_key or settings.WOO_CONSUMER_KEY
        self.consumer_secret = consumer_secret or settings.WOO_CONSUMER_SECRET
        self.timeout = timeout if timeout is not None else settings.PLATFORM_TIMEOUT
        # Injected in tests; None means a real network transport
        self.transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict] = None,
        json: Optional[Dict] = None
    ):
        """
        Make an authenticated REST call and classify failures

        Raises:
            TransientUpstreamError: network errors, timeouts, 429 and 5xx
            PlatformRejection: any other non-2xx answer
        """
        query = dict(params or {})
        # Query-string auth, as WooCommerce expects over plain HTTPS setups
        query["consumer_key"] = self.consumer_key or ""
        query["consumer_secret"] = self.consumer_secret or ""

        async with httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self.timeout,
            transport=self.transport
        ) as client:
            try:
                response = await client.request(
                    method,
                    path,
                    params=query,
                    json=json,
                    headers={"Accept": "application/json"}
                )
            except httpx.HTTPError as e:
                logger.warning(f"WooCommerce {method} {path} transport error: {type(e).__name__}: {e}")
                raise TransientUpstreamError(f"WooCommerce {method} {path}: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientUpstreamError(
                f"WooCommerce {method} {path} answered HTTP {response.status_code}",
                status_code=response.status_code
            )
        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = None
            detail = body.get("message", response.text) if isinstance(body, dict) else response.text
            raise PlatformRejection(
                f"WooCommerce {method} {path} rejected: {detail}",
                status_code=response.status_code
            )
        return response.json()

    async def get_order(self, order_id: str) -> Dict:
        logger.info(f"Getting order {order_id}")
        return await self._request("GET", f"orders/{order_id}")

    async def create_order(self, data: Dict) -> Dict:
        order = await self._request("POST", "orders", json=data)
        logger.info(f"Order created: {order.get('id')}")
        return order

    async def update_order(self, order_id: str, patch: Dict) -> Dict:
        logger.info(f"Updating order {order_id} with fields {sorted(patch)}")
        return await self._request("PUT", f"orders/{order_id}", json=patch)

    async def find_orders_by_meta(self, key: str, value: str) -> List[Dict]:
        orders = await self._request(
            "GET",
            "orders",
            params={
                "search": value,
                "meta_key": key,
                "meta_value": value,
                "orderby": "date",
                "order": "desc",
                "per_page": PAGE_SIZE
            }
        )
        # The search parameter is fuzzy; keep exact meta matches only
        return [order for order in orders if meta_value(order, key) == value]

    async def find_product_by_sku(self, sku: str) -> Optional[Dict]:
        products = await self._request("GET", "products", params={"sku": sku})
        return products[0] if products else None

    async def create_product(self, data: Dict) -> Dict:
        product = await self._request("POST", "products", json=data)
        logger.info(f"Product created: {product.get('id')} (sku={product.get('sku')})")
        return product

    async def list_products(self, filters: Optional[Dict] = None) -> List[Dict]:
        params = {"status": "publish", "per_page": PAGE_SIZE}
        params.update(filters or {})
        page_size = int(params["per_page"])

        products: List[Dict] = []
        page = 1
        while True:
            batch = await self._request("GET", "products", params={**params, "page": page})
            if not batch:
                break
            products.extend(batch)
            # A short page is the last page
            if len(batch) < page_size:
                break
            page += 1

        logger.debug(f"Retrieved {len(products)} products from WooCommerce")
        return products

    async def get_product(self, product_id: str) -> Dict:
        return await self._request("GET", f"products/{product_id}")

    async def test_connection(self) -> bool:
        try:
            await self._request("GET", "products", params={"per_page": 1})
            return True
        except (TransientUpstreamError, PlatformRejection) as e:
            logger.error(f"WooCommerce API connection failed: {e}")
            return False
