"""
Quote Charges
Item subtotal, tax, delivery and packing charges for select
"""
import logging
from typing import Dict, List, Optional

from ondc_adapter.config import settings

logger = logging.getLogger(__name__)

BASE_DELIVERY_CHARGE = 30.0
PER_KM_CHARGE = 10.0
FREE_KM = 3.0
DEFAULT_DISTANCE_KM = 5.0
HEAVY_ORDER_KG = 5.0
HEAVY_ORDER_CHARGE = 20.0
DEFAULT_DELIVERY_CHARGE = 40.0

BASE_PACKING_CHARGE = 10.0
PER_EXTRA_ITEM_CHARGE = 5.0
SPECIAL_PACKING_CHARGE = 15.0
SPECIAL_PACKING_CATEGORIES = frozenset({"electronics", "fragile", "glass"})


def _money(value: float) -> Dict:
    return {"currency": "INR", "value": f"{value:.2f}"}


def _distance_km(location: Dict) -> float:
    """
    Rough distance estimate: GPS when given, otherwise the pincode's last two
    digits; DEFAULT_DISTANCE_KM when the chosen source does not parse
    """
    gps = location.get("gps")
    if gps:
        try:
            lat, lng = (float(part.strip()) for part in gps.split(","))
            return abs(lat) + abs(lng) / 10
        except ValueError:
            logger.warning(f"Could not parse GPS coordinates '{gps}'")
            return DEFAULT_DISTANCE_KM
    area_code = str((location.get("address") or {}).get("area_code") or "")
    if area_code[-2:].isdigit():
        return int(area_code[-2:]) / 10 + FREE_KM
    return DEFAULT_DISTANCE_KM


def delivery_charge(location: Optional[Dict], lines: List[Dict]) -> float:
    """
    Delivery charge for a drop location

    Args:
        location: Fulfillment end location ({gps, address})
        lines: Priced lines, each with `product` and `count`
    """
    if not location or not (location.get("gps") or location.get("address")):
        return DEFAULT_DELIVERY_CHARGE
    charge = BASE_DELIVERY_CHARGE + max(0.0, _distance_km(location) - FREE_KM) * PER_KM_CHARGE
    weight = sum(float(line["product"].get("weight") or 0) * line["count"] for line in lines if line["product"])
    if weight > HEAVY_ORDER_KG:
        charge += HEAVY_ORDER_CHARGE
    return round(charge, 2)


def packing_charge(lines: List[Dict]) -> float:
    item_count = sum(line["count"] for line in lines)
    charge = BASE_PACKING_CHARGE + max(0, item_count - 1) * PER_EXTRA_ITEM_CHARGE
    for line in lines:
        slugs = {(c.get("slug") or "").lower() for c in (line["product"] or {}).get("categories") or []}
        if slugs & SPECIAL_PACKING_CATEGORIES:
            charge += SPECIAL_PACKING_CHARGE
    return charge


def build_quote(lines: List[Dict], location: Optional[Dict]) -> Dict:
    """
    Quote = subtotal + tax + delivery + packing, with an ONDC breakup

    Each line is {"item_id", "product", "count"}; lines without a product
    (unknown or unavailable items) are quoted at zero.
    """
    breakup = []
    subtotal = 0.0
    for line in lines:
        product = line["product"] or {}
        price = float(product.get("price") or product.get("regular_price") or 0)
        total = price * line["count"]
        subtotal += total
        breakup.append({
            "@ondc/org/item_id": line["item_id"],
            "title": product.get("name", ""),
            "@ondc/org/title_type": "item",
            "@ondc/org/item_quantity": {"count": line["count"]},
            "price": _money(total),
        })

    tax = subtotal * settings.TAX_RATE
    delivery = delivery_charge(location, lines)
    packing = packing_charge(lines)
    breakup.extend([
        {"@ondc/org/item_id": "tax", "title": "Tax", "@ondc/org/title_type": "tax", "price": _money(tax)},
        {"@ondc/org/item_id": "delivery", "title": "Delivery charges",
         "@ondc/org/title_type": "delivery", "price": _money(delivery)},
        {"@ondc/org/item_id": "packing", "title": "Packing charges",
         "@ondc/org/title_type": "packing", "price": _money(packing)},
    ])
    return {"price": _money(subtotal + tax + delivery + packing), "breakup": breakup}
