"""
Sandbox Commerce Platform
In-memory WooCommerce-shaped store for local development without a live shop
"""
from copy import deepcopy
from datetime import datetime, timezone
from itertools import count
from typing import List, Dict, Optional
import logging

from ondc_adapter.commerce.interface import CommercePlatform, meta_value
from ondc_adapter.core.errors import PlatformRejection

logger = logging.getLogger(__name__)

def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")

# Sample catalog for development
SAMPLE_PRODUCTS = [
    {
        "id": 101,
        "name": "Organic Honey",
        "sku": "HONEY-500",
        "type": "simple",
        "status": "publish",
        "price": "400.00",
        "regular_price": "400.00",
        "stock_status": "instock",
        "weight": "0.5",
        "short_description": "Pure forest honey",
        "description": "<p>Pure forest honey from tribal areas</p>",
        "categories": [{"id": 15, "name": "Food", "slug": "food"}],
        "images": [{"src": "https://example.com/products/honey.jpg"}],
        "attributes": [{"name": "city", "options": ["Bengaluru", "Mumbai"]}],
        "meta_data": []
    },
    {
        "id": 102,
        "name": "Bamboo Basket",
        "sku": "BASKET-L",
        "type": "simple",
        "status": "publish",
        "price": "250.00",
        "regular_price": "300.00",
        "stock_status": "instock",
        "weight": "1.2",
        "short_description": "Handcrafted bamboo basket",
        "description": "<p>Handcrafted bamboo basket</p>",
        "categories": [{"id": 16, "name": "Handicraft", "slug": "handicraft"}],
        "images": [],
        "attributes": [{"name": "available_in", "options": ["Delhi"]}],
        "meta_data": []
    },
    {
        "id": 103,
        "name": "Glass Tea Jar",
        "sku": "JAR-GLASS",
        "type": "simple",
        "status": "publish",
        "price": "150.00",
        "regular_price": "150.00",
        "stock_status": "outofstock",
        "weight": "0.8",
        "short_description": "Glass jar for loose tea",
        "description": "",
        "categories": [{"id": 17, "name": "Glass", "slug": "glass"}],
        "images": [],
        "attributes": [],
        "meta_data": []
    },
]

class SandboxBackend(CommercePlatform):
    """In-memory implementation of CommercePlatform"""

    def __init__(self, products: Optional[List[Dict]] = None, orders: Optional[List[Dict]] = None):
        self.products: Dict[str, Dict] = {}
        self.orders: Dict[str, Dict] = {}
        self._product_ids = count(1000)
        self._order_ids = count(1)
        self._line_ids = count(1)

        for product in deepcopy(SAMPLE_PRODUCTS if products is None else products):
            self.products[str(product["id"])] = product
        for order in deepcopy(orders or []):
            self.orders[str(order["id"])] = self._with_defaults(order)

        if self.orders:
            self._order_ids = count(max(int(key) for key in self.orders) + 1)

    def _with_defaults(self, order: Dict) -> Dict:
        order.setdefault("status", "pending")
        order.setdefault("currency", "INR")
        order.setdefault("line_items", [])
        order.setdefault("billing", {})
        order.setdefault("shipping", {})
        order.setdefault("meta_data", [])
        order.setdefault("total", "0.00")
        order.setdefault("date_created", _now())
        order.setdefault("date_modified", order["date_created"])
        return order

    @staticmethod
    def _merge_meta(existing: List[Dict], updates: List[Dict]) -> List[Dict]:
        merged = [dict(meta) for meta in existing]
        for update in updates:
            for meta in merged:
                if meta.get("key") == update.get("key"):
                    meta["value"] = update.get("value")
                    break
            else:
                merged.append(dict(update))
        return merged

    async def get_order(self, order_id: str) -> Dict:
        order = self.orders.get(str(order_id))
        if order is None:
            raise PlatformRejection(f"Order {order_id} not found", status_code=404)
        return deepcopy(order)

    async def create_order(self, data: Dict) -> Dict:
        order_id = next(self._order_ids)
        order = self._with_defaults(deepcopy(data))
        order["id"] = order_id

        total = 0.0
        for line in order["line_items"]:
            product = self.products.get(str(line.get("product_id")), {})
            line.setdefault("id", next(self._line_ids))
            line.setdefault("name", product.get("name", ""))
            price = float(product.get("price") or 0)
            line.setdefault("total", f"{price * line.get('quantity', 1):.2f}")
            line.setdefault("total_tax", "0.00")
            total += float(line["total"])
        order["total"] = f"{total:.2f}"

        self.orders[str(order_id)] = order
        logger.info(f"Sandbox order created: {order_id}")
        return deepcopy(order)

    async def update_order(self, order_id: str, patch: Dict) -> Dict:
        order = self.orders.get(str(order_id))
        if order is None:
            raise PlatformRejection(f"Order {order_id} not found", status_code=404)

        patch = deepcopy(patch)
        if "meta_data" in patch:
            order["meta_data"] = self._merge_meta(order["meta_data"], patch.pop("meta_data"))
        for field in ("billing", "shipping"):
            if field in patch:
                order[field] = {**order.get(field, {}), **patch.pop(field)}
        order.update(patch)
        order["date_modified"] = _now()
        return deepcopy(order)

    async def find_orders_by_meta(self, key: str, value: str) -> List[Dict]:
        matches = [order for order in self.orders.values() if meta_value(order, key) == value]
        matches.sort(key=lambda order: order["id"], reverse=True)
        return deepcopy(matches)

    async def find_product_by_sku(self, sku: str) -> Optional[Dict]:
        for product in self.products.values():
            if product.get("sku") == sku:
                return deepcopy(product)
        return None

    async def create_product(self, data: Dict) -> Dict:
        product = deepcopy(data)
        product["id"] = next(self._product_ids)
        product.setdefault("price", product.get("regular_price", "0"))
        product.setdefault("stock_status", "instock")
        product.setdefault("categories", [])
        product.setdefault("images", [])
        product.setdefault("attributes", [])
        product.setdefault("meta_data", [])
        self.products[str(product["id"])] = product
        return deepcopy(product)

    async def list_products(self, filters: Optional[Dict] = None) -> List[Dict]:
        filters = filters or {}
        results = [p for p in self.products.values() if p.get("status", "publish") == "publish"]

        if filters.get("category"):
            category = str(filters["category"])
            results = [
                p for p in results
                if any(str(c.get("id")) == category for c in p.get("categories", []))
            ]
        if filters.get("stock_status"):
            results = [p for p in results if p.get("stock_status") == filters["stock_status"]]

        return deepcopy(results)

    async def get_product(self, product_id: str) -> Dict:
        product = self.products.get(str(product_id))
        if product is None:
            raise PlatformRejection(f"Product {product_id} not found", status_code=404)
        return deepcopy(product)
