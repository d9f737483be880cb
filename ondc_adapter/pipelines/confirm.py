"""
Confirm Pipeline
Moves the pending order to processing; rolls it back if on_confirm is not delivered
"""
import logging
from typing import Dict, Optional

from ondc_adapter.core.errors import PlatformRejection
from ondc_adapter.mapping.orders import (
    TERMINAL_STATUSES,
    TRANSACTION_META_KEY,
    order_to_ondc,
    platform_order_id,
)
from ondc_adapter.pipelines.base import (
    COMPENSATION_REASON_CODE,
    ActionPipeline,
    ValidationOutcome,
    mark_cancelled,
)
from ondc_adapter.protocol.schemas import ConfirmRequest

logger = logging.getLogger(__name__)

COMPENSATION_DESCRIPTION = "Order cancelled because of order confirmation failure"


class ConfirmPipeline(ActionPipeline):
    action = "confirm"
    compensates = True

    async def locate_order(self, request: ConfirmRequest) -> Optional[Dict]:
        """By order id first, then by the transaction tag written on init"""
        order_id = request.message.order.id
        if order_id:
            try:
                return await self.platform.get_order(platform_order_id(order_id))
            except PlatformRejection as e:
                if not e.not_found:
                    raise
                logger.info(f"[{request.context.transaction_id}] Order {order_id} not found by id; trying transaction tag")

        orders = await self.platform.find_orders_by_meta(TRANSACTION_META_KEY, request.context.transaction_id)
        return orders[0] if orders else None

    async def validate(self, request: ConfirmRequest) -> ValidationOutcome:
        order = await self.locate_order(request)
        if order is None:
            return ValidationOutcome.reject("Order not found", "40004")
        if order.get("status") in TERMINAL_STATUSES:
            return ValidationOutcome.reject(f"Order is already {order['status']}", "40005")
        return ValidationOutcome.ok(order)

    async def process(self, request: ConfirmRequest, outcome: ValidationOutcome) -> Dict:
        order = await self.platform.update_order(str(outcome.order["id"]), {
            "status": "processing",
            "meta_data": [
                {"key": "ondc_confirmed", "value": "true"},
                {"key": "ondc_confirm_transaction_id", "value": request.context.transaction_id},
            ],
        })
        logger.info(f"[{request.context.transaction_id}] Order {order['id']} confirmed ({order.get('status')})")
        return {"order": order_to_ondc(order, state="Accepted")}

    async def on_delivered(self, request: ConfirmRequest, message: Dict) -> None:
        await self.platform.update_order(message["order"]["id"], {
            "meta_data": [{"key": "ondc_state", "value": "Accepted"}],
        })

    async def fallback(self, request: ConfirmRequest, outcome: Optional[ValidationOutcome],
                       error: BaseException) -> None:
        order_id = str(outcome.order["id"]) if outcome and outcome.order else request.message.order.id
        if not order_id:
            logger.warning(f"[{request.context.transaction_id}] No order id to cancel after confirm failure")
            return
        await self.platform.update_order(platform_order_id(order_id), {
            "status": "cancelled",
            "customer_note": f"Cancelled after confirm failure: {error}",
        })

    async def compensate(self, request: ConfirmRequest, message: Dict) -> None:
        order_id = message["order"]["id"]
        await mark_cancelled(self.platform, order_id, COMPENSATION_REASON_CODE, COMPENSATION_DESCRIPTION)
        logger.info(
            f"[{request.context.transaction_id}] Order {order_id} cancelled with reason {COMPENSATION_REASON_CODE}"
        )
