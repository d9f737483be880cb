"""
Select Pipeline
Quote and per-item availability, without touching platform state
"""
import logging
import re
from typing import Dict, Optional

from ondc_adapter.config import settings
from ondc_adapter.core.errors import PlatformRejection
from ondc_adapter.mapping.charges import build_quote
from ondc_adapter.pipelines.base import ActionPipeline, ValidationOutcome
from ondc_adapter.protocol.schemas import SelectRequest

logger = logging.getLogger(__name__)

DEFAULT_FULFILLMENT = "standard-delivery"


def product_id_from_item(item_id: str) -> str:
    """Item ids may carry a letter prefix (I12 -> 12)"""
    return re.sub(r"^[A-Za-z]+", "", item_id) or item_id


class SelectPipeline(ActionPipeline):
    action = "select"

    async def _product(self, item_id: str) -> Optional[Dict]:
        try:
            return await self.platform.get_product(product_id_from_item(item_id))
        except PlatformRejection as e:
            if e.not_found:
                return None
            raise

    async def process(self, request: SelectRequest, outcome: ValidationOutcome) -> Dict:
        order = request.message.order
        fulfillment = order.fulfillments[0] if order.fulfillments else None
        fulfillment_id = (fulfillment.id if fulfillment else None) or DEFAULT_FULFILLMENT
        location = None
        if fulfillment and fulfillment.end and fulfillment.end.location:
            location = fulfillment.end.location.model_dump(exclude_none=True)

        lines = []
        for item in order.items:
            product = await self._product(item.id)
            available = bool(product) and product.get("stock_status") == "instock"
            if not available:
                logger.info(f"[{request.context.transaction_id}] Item {item.id} is not available")
            lines.append({
                "item_id": item.id,
                "product": product if available else None,
                "count": item.quantity.count,
                "available": available,
            })

        serviceable = bool(location)
        return {
            "order": {
                "provider": {"id": settings.PROVIDER_ID, "locations": [{"id": "store-location"}]},
                "items": [
                    {
                        "id": line["item_id"],
                        "fulfillment_id": fulfillment_id,
                        "quantity": {"count": line["count"]},
                        "@ondc/org/available": line["available"],
                    }
                    for line in lines
                ],
                "fulfillments": [
                    {
                        "id": fulfillment_id,
                        "@ondc/org/category": "Immediate Delivery",
                        "@ondc/org/TAT": "P2D",
                        "state": {"descriptor": {"code": "Serviceable" if serviceable else "Non-serviceable"}},
                    }
                ],
                "quote": build_quote(lines, location),
            }
        }
