"""
Order Mapping
Projects WooCommerce orders into ONDC order/fulfillment vocabulary and back
"""
import logging
from typing import Dict, List, Optional

from ondc_adapter.config import settings
from ondc_adapter.commerce.interface import meta_value
from ondc_adapter.protocol.schemas import Item, Order

logger = logging.getLogger(__name__)

DEFAULT_FULFILLMENT_ID = "F1"
TRANSACTION_META_KEY = "ondc_transaction_id"
CANCELLED_FULFILLMENTS_META_KEY = "ondc_cancelled_fulfillments"

ORDER_STATES = {
    "pending": "Created",
    "processing": "Accepted",
    "on-hold": "In-progress",
    "completed": "Completed",
    "cancelled": "Cancelled",
    "refunded": "Cancelled",
    "failed": "Cancelled",
    "trash": "Cancelled",
}

FULFILLMENT_STATES = {
    "pending": "Pending",
    "processing": "Packed",
    "on-hold": "Pending",
    "completed": "Order-delivered",
    "cancelled": "Cancelled",
    "refunded": "Cancelled",
    "failed": "Cancelled",
    "trash": "Cancelled",
}

TERMINAL_STATUSES = frozenset({"cancelled", "refunded", "failed", "trash"})


def map_order_state(status: Optional[str]) -> str:
    return ORDER_STATES.get(status or "", "Created")


def map_fulfillment_state(status: Optional[str]) -> str:
    return FULFILLMENT_STATES.get(status or "", "Pending")


def platform_order_id(ondc_order_id: str) -> str:
    """Order ids may be echoed back with an `O` prefix (O15 -> 15)"""
    order_id = str(ondc_order_id).strip()
    if len(order_id) > 1 and order_id[0] == "O" and order_id[1:].isdigit():
        return order_id[1:]
    return order_id


def cancelled_fulfillments(order: Dict) -> List[str]:
    value = meta_value(order, CANCELLED_FULFILLMENTS_META_KEY)
    if not value:
        return []
    return [part for part in str(value).split(",") if part]


def line_fulfillment_id(line: Dict) -> str:
    return meta_value(line, "ondc_fulfillment_id") or DEFAULT_FULFILLMENT_ID


def fulfillment_ids(order: Dict) -> List[str]:
    ids = []
    for line in order.get("line_items") or []:
        fid = line_fulfillment_id(line)
        if fid not in ids:
            ids.append(fid)
    return ids or [DEFAULT_FULFILLMENT_ID]


def _address(source: Dict) -> Dict:
    return {
        "name": source.get("first_name", ""),
        "building": source.get("address_1", ""),
        "locality": source.get("address_2", ""),
        "city": source.get("city", ""),
        "state": source.get("state", ""),
        "country": source.get("country", ""),
        "area_code": source.get("postcode", ""),
    }


def _store_location() -> Dict:
    return {
        "gps": settings.STORE_GPS,
        "address": {
            "name": settings.STORE_NAME,
            "locality": settings.STORE_LOCALITY,
            "city": settings.STORE_CITY,
            "state": settings.STORE_STATE,
            "area_code": settings.STORE_AREA_CODE,
        },
    }


def quote_breakup(order: Dict) -> List[Dict]:
    currency = order.get("currency", "INR")
    breakup = []
    for line in order.get("line_items") or []:
        item_id = str(line.get("product_id", line.get("id")))
        breakup.append({
            "@ondc/org/item_id": item_id,
            "@ondc/org/item_quantity": {"count": line.get("quantity", 1)},
            "title": line.get("name", ""),
            "@ondc/org/title_type": "item",
            "price": {"currency": currency, "value": str(line.get("total", "0"))},
        })
        if float(line.get("total_tax") or 0) > 0:
            breakup.append({
                "@ondc/org/item_id": item_id,
                "title": "Tax",
                "@ondc/org/title_type": "tax",
                "price": {"currency": currency, "value": str(line["total_tax"])},
            })
    if float(order.get("shipping_total") or 0) > 0:
        breakup.append({
            "@ondc/org/item_id": DEFAULT_FULFILLMENT_ID,
            "title": "Delivery charges",
            "@ondc/org/title_type": "delivery",
            "price": {"currency": currency, "value": str(order["shipping_total"])},
        })
    if float(order.get("discount_total") or 0) > 0:
        breakup.append({
            "@ondc/org/item_id": DEFAULT_FULFILLMENT_ID,
            "title": "Discount",
            "@ondc/org/title_type": "discount",
            "price": {"currency": currency, "value": f"-{order['discount_total']}"},
        })
    return breakup


def order_to_ondc(order: Dict, state: Optional[str] = None) -> Dict:
    """
    Re-project a platform order into an ONDC order object

    Args:
        order: WooCommerce order record
        state: Force an order state instead of mapping the platform status

    Returns:
        ONDC order with state, items, billing, fulfillments and quote
    """
    status = order.get("status")
    currency = order.get("currency", "INR")
    billing = order.get("billing") or {}
    shipping = order.get("shipping") or {}
    cancelled = cancelled_fulfillments(order)

    fulfillments = []
    for fid in fulfillment_ids(order):
        code = "Cancelled" if fid in cancelled else map_fulfillment_state(status)
        fulfillments.append({
            "id": fid,
            "@ondc/org/provider_name": settings.STORE_NAME,
            "type": "Delivery",
            "tracking": False,
            "@ondc/org/TAT": "PT60M",
            "state": {"descriptor": {"code": code}},
            "start": {
                "location": _store_location(),
                "contact": {"phone": settings.STORE_PHONE, "email": settings.STORE_EMAIL},
            },
            "end": {
                "location": {"gps": shipping.get("gps", ""), "address": _address(shipping or billing)},
                "contact": {"phone": billing.get("phone", ""), "email": billing.get("email", "")},
            },
        })

    ondc_order = {
        "id": str(order["id"]),
        "state": state or map_order_state(status),
        "provider": {"id": settings.PROVIDER_ID, "locations": [{"id": "store-location"}]},
        "items": [
            {
                "id": str(line.get("product_id", line.get("id"))),
                "fulfillment_id": line_fulfillment_id(line),
                "quantity": {"count": line.get("quantity", 1)},
            }
            for line in order.get("line_items") or []
        ],
        "billing": {
            "name": " ".join(filter(None, [billing.get("first_name"), billing.get("last_name")])),
            "address": _address(billing),
            "email": billing.get("email", ""),
            "phone": billing.get("phone", ""),
        },
        "fulfillments": fulfillments,
        "quote": {
            "price": {"currency": currency, "value": str(order.get("total", "0"))},
            "breakup": quote_breakup(order),
            "ttl": "P1D",
        },
        "payment": {
            "status": "PAID" if order.get("date_paid") else "NOT-PAID",
            "type": "POST-FULFILLMENT",
            "collected_by": "BAP",
        },
        "created_at": order.get("date_created"),
        "updated_at": order.get("date_modified"),
    }

    if status in ("cancelled", "refunded"):
        ondc_order["cancellation"] = {
            "cancelled_by": settings.BPP_ID,
            "reason": {
                "id": meta_value(order, "ondc_cancellation_reason") or "001",
                "description": order.get("customer_note") or "Order cancelled",
            },
        }
    return ondc_order


def billing_to_platform(order: Order) -> Dict:
    billing = order.billing
    if billing is None:
        return {}
    address = billing.address
    name = (billing.name or "").split(" ")
    return {
        "first_name": name[0],
        "last_name": " ".join(name[1:]),
        "email": billing.email or "",
        "phone": billing.phone or "",
        "address_1": address.building or address.name or "",
        "address_2": address.street or address.locality or "",
        "city": address.city or "",
        "state": address.state or "",
        "postcode": address.area_code or "",
        "country": address.country or "",
    }


def shipping_to_platform(order: Order) -> Dict:
    """Shipping comes from the first fulfillment's end address, else billing"""
    for fulfillment in order.fulfillments:
        location = fulfillment.end.location if fulfillment.end else None
        if location and location.address:
            address = location.address
            name = ((order.billing.name if order.billing else None) or "").split(" ")
            return {
                "first_name": name[0],
                "last_name": " ".join(name[1:]),
                "address_1": address.name or address.building or "",
                "address_2": address.building if address.name else (address.street or ""),
                "city": address.city or "",
                "state": address.state or "",
                "postcode": address.area_code or "",
                "country": address.country or "",
            }
    billing = billing_to_platform(order)
    billing.pop("email", None)
    billing.pop("phone", None)
    return billing


def new_order_payload(order: Order, product_ids: Dict[str, int], transaction_id: str, message_id: str) -> Dict:
    """WooCommerce order body for init: pending, COD, tagged for later correlation"""
    return {
        "status": "pending",
        "payment_method": "cod",
        "payment_method_title": "Cash on Delivery",
        "billing": billing_to_platform(order),
        "shipping": shipping_to_platform(order),
        "line_items": [line_item(item, product_ids[item.id]) for item in order.items],
        "meta_data": [
            {"key": TRANSACTION_META_KEY, "value": transaction_id},
            {"key": "ondc_message_id", "value": message_id},
            {"key": "order_source", "value": "ONDC"},
        ],
    }


def line_item(item: Item, product_id: int) -> Dict:
    return {
        "product_id": product_id,
        "quantity": item.quantity.count,
        "meta_data": [{"key": "ondc_fulfillment_id", "value": item.fulfillment_id or DEFAULT_FULFILLMENT_ID}],
    }


def update_patch(order: Order) -> Dict:
    """Translate an /update order into a WooCommerce patch"""
    patch: Dict = {}
    if order.billing:
        patch["billing"] = billing_to_platform(order)
    if any(f.end and f.end.location and f.end.location.address for f in order.fulfillments):
        patch["shipping"] = shipping_to_platform(order)
    if order.cancellation:
        reason = order.cancellation.get("reason") or {}
        patch["status"] = "cancelled"
        patch["customer_note"] = reason.get("description") or "Order cancelled"
    return patch
