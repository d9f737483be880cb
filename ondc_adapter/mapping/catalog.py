"""
Catalog Mapping
City-code serviceability filter and WooCommerce products -> ONDC catalog
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from ondc_adapter.config import settings

logger = logging.getLogger(__name__)

DEFAULT_CITY = "default"

# STD code -> city name
CITY_CODES = {
    "std080": "Bengaluru",
    "std011": "Delhi",
    "std022": "Mumbai",
    "std033": "Kolkata",
    "std040": "Hyderabad",
    "std044": "Chennai",
    "std020": "Pune",
    "std079": "Ahmedabad",
    "std0141": "Jaipur",
    "std0522": "Lucknow",
}

CITY_ATTRIBUTES = ("city", "location", "available_in")

_TAGS = re.compile(r"</?[^>]+(>|$)")


def map_city_code(city_code: Optional[str]) -> str:
    """Map `std:080` / `std080` to a city name; anything unknown maps to "default" """
    if not city_code:
        return DEFAULT_CITY
    code = re.sub(r"^std:?", "", city_code.strip())
    city = CITY_CODES.get(f"std{code}")
    if city is None:
        logger.warning(f"No mapping found for city code {city_code}; serving unfiltered catalog")
        return DEFAULT_CITY
    return city


def serves_city(product: Dict, city: str) -> bool:
    """Products without any location information are served everywhere"""
    needle = city.lower()
    for attribute in product.get("attributes") or []:
        if (attribute.get("name") or "").lower() in CITY_ATTRIBUTES:
            return any(needle in str(option).lower() for option in attribute.get("options") or [])
    for meta in product.get("meta_data") or []:
        key = (meta.get("key") or "").lower()
        if ("city" in key or "location" in key) and meta.get("value"):
            return needle in str(meta["value"]).lower()
    return True


def filter_by_city(products: List[Dict], city_code: Optional[str]) -> List[Dict]:
    city = map_city_code(city_code)
    if city == DEFAULT_CITY:
        return products
    filtered = [product for product in products if serves_city(product, city)]
    logger.debug(f"Filtered {len(products)} products to {len(filtered)} for {city}")
    return filtered


def _strip_html(text: Optional[str]) -> str:
    return _TAGS.sub("", text or "").strip()


def _categories(products: List[Dict]) -> List[Dict]:
    seen: Dict[str, Dict] = {}
    for product in products:
        for category in product.get("categories") or []:
            category_id = str(category.get("id"))
            if category_id not in seen:
                seen[category_id] = {"id": category_id, "descriptor": {"name": category.get("name", "")}}
    return list(seen.values())


def product_to_item(product: Dict) -> Dict:
    categories = product.get("categories") or []
    return {
        "id": str(product["id"]),
        "descriptor": {
            "name": product.get("name", ""),
            "short_desc": _strip_html(product.get("short_description")),
            "long_desc": _strip_html(product.get("description")),
            "images": [{"url": image.get("src")} for image in product.get("images") or []],
        },
        "price": {
            "currency": "INR",
            "value": str(product.get("price") or product.get("regular_price") or "0"),
            "maximum_value": str(product.get("regular_price") or product.get("price") or "0"),
        },
        "category_id": str(categories[0]["id"]) if categories else "",
        "fulfillment_id": "standard-delivery",
        "location_id": "store-location",
        "@ondc/org/returnable": True,
        "@ondc/org/cancellable": True,
        "@ondc/org/available_on_cod": True,
        "@ondc/org/time_to_ship": "P1D",
        "@ondc/org/seller_pickup_return": False,
        "@ondc/org/return_window": "P7D",
        "@ondc/org/contact_details_consumer_care": settings.STORE_EMAIL,
        "tags": [
            {"code": "type", "list": [{"code": "type", "value": product.get("type", "simple")}]},
            {
                "code": "attributes",
                "list": [
                    {"code": attribute.get("name"), "value": ", ".join(attribute.get("options") or [])}
                    for attribute in product.get("attributes") or []
                ],
            },
        ],
    }


def build_catalog(products: List[Dict]) -> Dict:
    """ONDC on_search catalog for the given products, valid for 24 hours"""
    expires = datetime.now(timezone.utc) + timedelta(hours=24)
    return {
        "bpp/descriptor": {
            "name": settings.STORE_NAME,
            "short_desc": f"ONDC-enabled {settings.STORE_NAME}",
        },
        "bpp/providers": [
            {
                "id": settings.PROVIDER_ID,
                "descriptor": {"name": settings.STORE_NAME},
                "categories": _categories(products),
                "items": [product_to_item(product) for product in products],
                "fulfillments": [
                    {
                        "id": "standard-delivery",
                        "type": "Delivery",
                        "tracking": False,
                        "contact": {"phone": settings.STORE_PHONE, "email": settings.STORE_EMAIL},
                    }
                ],
                "locations": [
                    {
                        "id": "store-location",
                        "gps": settings.STORE_GPS,
                        "address": {
                            "street": settings.STORE_LOCALITY,
                            "city": settings.STORE_CITY,
                            "area_code": settings.STORE_AREA_CODE,
                            "state": settings.STORE_STATE,
                            "country": "IND",
                        },
                    }
                ],
            }
        ],
        "bpp/fulfillments": [{"id": "standard-delivery", "type": "Delivery"}],
        "exp": expires.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    }
