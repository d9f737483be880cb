"""
Init Pipeline
Creates the pending platform order, at most once per transaction
"""
import logging
from typing import Dict, Optional

from ondc_adapter.mapping.orders import (
    TERMINAL_STATUSES,
    TRANSACTION_META_KEY,
    new_order_payload,
    order_to_ondc,
)
from ondc_adapter.pipelines.base import (
    COMPENSATION_REASON_CODE,
    ActionPipeline,
    ValidationOutcome,
    mark_cancelled,
)
from ondc_adapter.protocol.schemas import InitRequest

logger = logging.getLogger(__name__)

PLACEHOLDER_PRICE = "99.99"
PLACEHOLDER_STOCK = 100


def placeholder_sku(item_id: str) -> str:
    return f"ONDC-{item_id}"


class InitPipeline(ActionPipeline):
    action = "init"
    compensates = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Set only when this run created the order; fallback never touches anything else
        self.created_order_id: Optional[str] = None

    async def validate(self, request: InitRequest) -> ValidationOutcome:
        order = request.message.order
        if order.billing is None:
            return ValidationOutcome.reject("order.billing is required", "30001")
        return ValidationOutcome.ok()

    async def _existing_order(self, transaction_id: str) -> Optional[Dict]:
        """Live order tagged with this transaction; terminal ones are never reused"""
        orders = await self.platform.find_orders_by_meta(TRANSACTION_META_KEY, transaction_id)
        for order in orders:
            if order.get("status") not in TERMINAL_STATUSES:
                return order
        return None

    async def ensure_product(self, item_id: str) -> Dict:
        """Find the platform product for an ONDC item, creating a placeholder if absent"""
        sku = placeholder_sku(item_id)
        product = await self.platform.find_product_by_sku(sku)
        if product is None:
            product = await self.platform.create_product({
                "name": f"ONDC Product {item_id}",
                "type": "simple",
                "regular_price": PLACEHOLDER_PRICE,
                "sku": sku,
                "status": "publish",
                "manage_stock": True,
                "stock_quantity": PLACEHOLDER_STOCK,
                "meta_data": [{"key": "ondc_product_id", "value": item_id}],
            })
            logger.info(f"Created placeholder product {product.get('id')} for item {item_id}")
        return product

    async def process(self, request: InitRequest, outcome: ValidationOutcome) -> Dict:
        context = request.context
        order = await self._existing_order(context.transaction_id)
        if order is not None:
            logger.info(f"[{context.transaction_id}] Reusing order {order['id']} created by an earlier init")
            return {"order": order_to_ondc(order)}

        product_ids = {}
        for item in request.message.order.items:
            product_ids[item.id] = (await self.ensure_product(item.id))["id"]
        order = await self.platform.create_order(
            new_order_payload(request.message.order, product_ids, context.transaction_id, context.message_id)
        )
        self.created_order_id = str(order["id"])
        logger.info(f"[{context.transaction_id}] Created pending order {order['id']}")
        return {"order": order_to_ondc(order, state="Created")}

    async def fallback(self, request: InitRequest, outcome, error: BaseException) -> None:
        # An order this run created must not be left pending; earlier inits' orders stay as they are
        if self.created_order_id is None:
            return
        await self.platform.update_order(self.created_order_id, {
            "status": "cancelled",
            "customer_note": f"Cancelled after init failure: {error}",
        })
        logger.info(f"[{request.context.transaction_id}] Cancelled orphaned order {self.created_order_id}")

    async def compensate(self, request: InitRequest, message: Dict) -> None:
        await mark_cancelled(
            self.platform,
            message["order"]["id"],
            COMPENSATION_REASON_CODE,
            "Order cancelled because on_init could not be delivered",
        )
