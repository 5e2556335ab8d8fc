"""
pricing.py — Product catalog and price rules for the single-product funnel

One watch design sold in ten variants (model ids 1–10) at a fixed base price,
plus a delivery surcharge that depends on where the parcel is dropped off.
All amounts are in Algerian dinars (DZD).
"""

from enum import Enum


class DeliveryOption(str, Enum):
    OFFICE = "office"
    HOME = "home"


BASE_PRICE = 1600
ORIGINAL_PRICE = 2200  # struck-through display price

DELIVERY_COSTS = {
    DeliveryOption.OFFICE: 500,
    DeliveryOption.HOME: 800,
}

# Arabic labels used in the ledger row and the staff email
DELIVERY_LABELS = {
    DeliveryOption.OFFICE: "مكتب",
    DeliveryOption.HOME: "منزل",
}

MIN_WATCH_MODEL_ID = 1
MAX_WATCH_MODEL_ID = 10
WATCH_MODEL_IDS = tuple(range(MIN_WATCH_MODEL_ID, MAX_WATCH_MODEL_ID + 1))

# Anti-abuse ceiling on a submitted total
MAX_TOTAL_PRICE = 1_000_000


def delivery_cost(delivery_option) -> int:
    return DELIVERY_COSTS[DeliveryOption(delivery_option)]


def calculate_total(delivery_option) -> int:
    """Returns BASE_PRICE plus the surcharge of `delivery_option`."""
    return BASE_PRICE + delivery_cost(delivery_option)


def watch_model_label(watch_model_id: int) -> str:
    return f"موديل {watch_model_id}"


def watch_image_url(base_url: str, watch_model_id: int, ext: str = "webp") -> str:
    """
    Builds the public product image URL for a watch model.

    Args:
        base_url (str): Public site root, e.g. "https://shop.example".
        watch_model_id (int): Catalog id (1–10).
        ext (str): Image file extension served by the site.

    Returns:
        str: `{base_url}/images/watches/{watch_model_id}.{ext}`
    """
    return f"{base_url.rstrip('/')}/images/watches/{watch_model_id}.{ext}"
