"""
Search Pipeline
Catalog snapshot filtered by the requesting city
"""
import logging
from typing import Dict

from ondc_adapter.mapping.catalog import build_catalog, filter_by_city, map_city_code
from ondc_adapter.pipelines.base import ActionPipeline, ValidationOutcome
from ondc_adapter.protocol.schemas import SearchRequest

logger = logging.getLogger(__name__)


class SearchPipeline(ActionPipeline):
    action = "search"

    async def process(self, request: SearchRequest, outcome: ValidationOutcome) -> Dict:
        context = request.context
        category = request.message.intent.get("category") or {}

        filters = {"stock_status": "instock"}
        if category.get("id"):
            filters["category"] = category["id"]

        products = await self.platform.list_products(filters)
        products = filter_by_city(products, context.city)
        logger.info(
            f"[{context.transaction_id}] Catalog for {map_city_code(context.city)}: {len(products)} products"
        )
        return {"catalog": build_catalog(products)}
