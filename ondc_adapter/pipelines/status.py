"""
Status Pipeline
Re-projects the current platform order into ONDC order/fulfillment states
"""
from typing import Dict

from ondc_adapter.core.errors import PlatformRejection
from ondc_adapter.mapping.orders import order_to_ondc, platform_order_id
from ondc_adapter.pipelines.base import ActionPipeline, ValidationOutcome
from ondc_adapter.protocol.schemas import StatusRequest


class StatusPipeline(ActionPipeline):
    action = "status"

    async def validate(self, request: StatusRequest) -> ValidationOutcome:
        try:
            order = await self.platform.get_order(platform_order_id(request.message.order_id))
        except PlatformRejection as e:
            if e.not_found:
                return ValidationOutcome.reject(f"Order {request.message.order_id} not found", "40004")
            raise
        return ValidationOutcome.ok(order)

    async def process(self, request: StatusRequest, outcome: ValidationOutcome) -> Dict:
        return {"order": order_to_ondc(outcome.order)}
