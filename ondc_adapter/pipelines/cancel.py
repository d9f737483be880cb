"""
Cancel Pipeline
Whole-order or single-fulfillment cancellation with a status-only last resort
"""
import logging
from typing import Dict, Optional

from ondc_adapter.config import settings
from ondc_adapter.core.errors import PlatformRejection
from ondc_adapter.mapping.orders import (
    CANCELLED_FULFILLMENTS_META_KEY,
    TERMINAL_STATUSES,
    cancelled_fulfillments,
    fulfillment_ids,
    order_to_ondc,
    platform_order_id,
)
from ondc_adapter.pipelines.base import ActionPipeline, ValidationOutcome, mark_cancelled
from ondc_adapter.protocol.schemas import CancelRequest

logger = logging.getLogger(__name__)


class CancelPipeline(ActionPipeline):
    action = "cancel"

    async def validate(self, request: CancelRequest) -> ValidationOutcome:
        message = request.message
        if message.cancellation_reason_id not in settings.CANCELLATION_REASON_CODES:
            return ValidationOutcome.reject(
                f"Cancellation reason {message.cancellation_reason_id} is not permitted", "40012"
            )

        try:
            order = await self.platform.get_order(platform_order_id(message.order_id))
        except PlatformRejection as e:
            if e.not_found:
                return ValidationOutcome.reject(f"Order {message.order_id} not found", "40004")
            raise

        # A terminal order is permanent; retrying cannot change it
        if order.get("status") in TERMINAL_STATUSES:
            return ValidationOutcome.reject(f"Order {message.order_id} is already {order['status']}", "40005")

        fulfillment_id = message.fulfillment_id
        if fulfillment_id:
            if fulfillment_id not in fulfillment_ids(order):
                return ValidationOutcome.reject(
                    f"Fulfillment {fulfillment_id} does not belong to order {message.order_id}", "40006"
                )
            if fulfillment_id in cancelled_fulfillments(order):
                return ValidationOutcome.reject(f"Fulfillment {fulfillment_id} is already cancelled", "40005")

        return ValidationOutcome.ok(order)

    async def process(self, request: CancelRequest, outcome: ValidationOutcome) -> Dict:
        message = request.message
        order_id = str(outcome.order["id"])
        reason = message.cancellation_reason_id
        fulfillment_id = message.fulfillment_id

        if fulfillment_id:
            cancelled = cancelled_fulfillments(outcome.order) + [fulfillment_id]
            # Cancelling the last live fulfillment cancels the order itself
            if set(cancelled) >= set(fulfillment_ids(outcome.order)):
                logger.info(f"[{request.context.transaction_id}] No live fulfillments left on order {order_id}")
                fulfillment_id = None

        if fulfillment_id:
            order = await self.platform.update_order(order_id, {
                "meta_data": [
                    {"key": CANCELLED_FULFILLMENTS_META_KEY, "value": ",".join(cancelled)},
                    {"key": f"ondc_cancellation_reason_{fulfillment_id}", "value": reason},
                ],
            })
            logger.info(f"[{request.context.transaction_id}] Fulfillment {fulfillment_id} of order {order_id} cancelled")
            return {"order": order_to_ondc(order)}

        order = await mark_cancelled(
            self.platform, order_id, reason, f"Cancelled via ONDC. Reason ID: {reason}"
        )
        logger.info(f"[{request.context.transaction_id}] Order {order_id} cancelled (reason {reason})")
        ondc_order = order_to_ondc(order, state="Cancelled")
        ondc_order["cancellation_reason_id"] = reason
        return {"order": ondc_order}

    async def fallback(self, request: CancelRequest, outcome: Optional[ValidationOutcome],
                       error: BaseException) -> None:
        if outcome is None or outcome.order is None:
            # Validation never passed; cancelling blindly could hit the wrong order state
            return
        if request.message.fulfillment_id:
            logger.warning(
                f"[{request.context.transaction_id}] Partial cancellation failed; "
                f"not escalating to a whole-order cancellation"
            )
            return
        order_id = str(outcome.order["id"])
        logger.info(f"[{request.context.transaction_id}] Attempting status-only cancellation of order {order_id}")
        await self.platform.update_order(order_id, {
            "status": "cancelled",
            "customer_note": f"Emergency cancellation due to system error: {error}",
        })
        logger.info(f"[{request.context.transaction_id}] Status-only cancellation of order {order_id} succeeded")
