"""
Update Pipeline
Applies billing/shipping/cancellation changes and re-projects the order
"""
import logging
from typing import Dict

from ondc_adapter.core.errors import PlatformRejection
from ondc_adapter.mapping.orders import TERMINAL_STATUSES, order_to_ondc, platform_order_id, update_patch
from ondc_adapter.pipelines.base import ActionPipeline, ValidationOutcome
from ondc_adapter.protocol.schemas import UpdateRequest

logger = logging.getLogger(__name__)


class UpdatePipeline(ActionPipeline):
    action = "update"

    async def validate(self, request: UpdateRequest) -> ValidationOutcome:
        order_id = request.message.target_order_id
        if not order_id:
            return ValidationOutcome.reject("Order id not found in message", "30000")
        try:
            order = await self.platform.get_order(platform_order_id(order_id))
        except PlatformRejection as e:
            if e.not_found:
                return ValidationOutcome.reject(f"Order {order_id} not found", "40004")
            raise
        if order.get("status") in TERMINAL_STATUSES:
            return ValidationOutcome.reject(f"Order {order_id} is already {order['status']}", "40005")
        return ValidationOutcome.ok(order)

    async def process(self, request: UpdateRequest, outcome: ValidationOutcome) -> Dict:
        order_id = str(outcome.order["id"])
        patch = update_patch(request.message.order) if request.message.order else {}
        if patch:
            await self.platform.update_order(order_id, patch)
            logger.info(f"[{request.context.transaction_id}] Order {order_id} updated: {sorted(patch)}")
        else:
            logger.info(f"[{request.context.transaction_id}] Nothing to update on order {order_id}")
        order = await self.platform.get_order(order_id)
        return {"order": order_to_ondc(order)}
