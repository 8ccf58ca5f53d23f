"""Promoto — Ad Set Category Registry.

Defines the canonical set of post categories the classifier may assign and
the properties the pipeline needs from each: offer type, whether posts are
grouped by event, whether targeting follows the delivery radius, and the
default audience template. The registry seeds the ad_set_categories table;
after seeding, the pipeline reads these properties from the table rows.
"""

from enum import Enum
from typing import Dict, List, Optional


class OfferType(str, Enum):
    """Marketing occasion kind an Opportunity is opened for."""

    EVENT = "event"
    LUNCH = "lunch"
    PROMO = "promo"
    PRODUCT = "product"
    BRAND = "brand"
    INFO = "info"


OFFER_TYPE_LABELS: Dict[OfferType, str] = {
    OfferType.EVENT: "Event",
    OfferType.LUNCH: "Lunch",
    OfferType.PROMO: "Promo",
    OfferType.PRODUCT: "Product",
    OfferType.BRAND: "Brand",
    OfferType.INFO: "Info",
}

# Meta interest ids
INTEREST_FAMILY = {"id": "6003139266461", "name": "Family"}
INTEREST_DATING = {"id": "6003248649975", "name": "Dating"}
INTEREST_RESTAURANTS = {"id": "6003107902433", "name": "Restaurants"}
INTEREST_FOOD_DELIVERY = {"id": "6003384829661", "name": "Food delivery"}


class CategoryDefinition:
    """Describes a single category code."""

    def __init__(
        self,
        code: str,
        name: str,
        parent_category: str,
        offer_type: OfferType,
        is_event_type: bool = False,
        requires_delivery: bool = False,
        age_min: int = 18,
        age_max: int = 65,
        interests: Optional[List[dict]] = None,
    ):
        self.code = code
        self.name = name
        self.parent_category = parent_category
        self.offer_type = offer_type
        self.is_event_type = is_event_type
        self.requires_delivery = requires_delivery
        self.targeting_template = {
            "age_min": age_min,
            "age_max": age_max,
            "genders": [],  # empty = all
            "interests": list(interests or []),
        }

    def __repr__(self) -> str:
        return f"<Category {self.code} ({self.offer_type.value})>"


# ─────────────────────────────────────────────
# CATEGORY CODES: canonical registry
# ─────────────────────────────────────────────

CATEGORIES: Dict[str, CategoryDefinition] = {
    # Events
    "EV_ALL": CategoryDefinition(
        "EV_ALL", "Event for everyone", "EV", OfferType.EVENT, is_event_type=True
    ),
    "EV_FAM": CategoryDefinition(
        "EV_FAM",
        "Family event",
        "EV",
        OfferType.EVENT,
        is_event_type=True,
        interests=[INTEREST_FAMILY],
    ),
    "EV_PAR": CategoryDefinition(
        "EV_PAR",
        "Event for couples",
        "EV",
        OfferType.EVENT,
        is_event_type=True,
        age_min=21,
        age_max=45,
        interests=[INTEREST_DATING],
    ),
    "EV_SEN": CategoryDefinition(
        "EV_SEN",
        "Event for seniors",
        "EV",
        OfferType.EVENT,
        is_event_type=True,
        age_min=55,
        age_max=65,
    ),
    # Lunch
    "LU_ONS": CategoryDefinition(
        "LU_ONS",
        "Lunch on-site",
        "LU",
        OfferType.LUNCH,
        interests=[INTEREST_RESTAURANTS],
    ),
    "LU_DEL": CategoryDefinition(
        "LU_DEL",
        "Lunch delivery",
        "LU",
        OfferType.LUNCH,
        requires_delivery=True,
        interests=[INTEREST_FOOD_DELIVERY],
    ),
    # Promotions
    "PR_ONS_CYK": CategoryDefinition(
        "PR_ONS_CYK", "Recurring promo on-site", "PR", OfferType.PROMO
    ),
    "PR_ONS_JED": CategoryDefinition(
        "PR_ONS_JED", "One-off promo on-site", "PR", OfferType.PROMO
    ),
    "PR_DEL_CYK": CategoryDefinition(
        "PR_DEL_CYK",
        "Recurring promo delivery",
        "PR",
        OfferType.PROMO,
        requires_delivery=True,
        interests=[INTEREST_FOOD_DELIVERY],
    ),
    "PR_DEL_JED": CategoryDefinition(
        "PR_DEL_JED",
        "One-off promo delivery",
        "PR",
        OfferType.PROMO,
        requires_delivery=True,
        interests=[INTEREST_FOOD_DELIVERY],
    ),
    # Products
    "PD_ONS": CategoryDefinition("PD_ONS", "Product on-site", "PD", OfferType.PRODUCT),
    "PD_DEL": CategoryDefinition(
        "PD_DEL",
        "Product delivery",
        "PD",
        OfferType.PRODUCT,
        requires_delivery=True,
        interests=[INTEREST_FOOD_DELIVERY],
    ),
    # Brand / info
    "BRAND": CategoryDefinition("BRAND", "Brand post", "BRAND", OfferType.BRAND),
    "INFO": CategoryDefinition("INFO", "Information", "INFO", OfferType.INFO),
}

VALID_CATEGORY_CODES = tuple(CATEGORIES.keys())
FALLBACK_CATEGORY = "INFO"


def offer_type_for(category_code: str) -> OfferType:
    """Map a category code to its offer type. Unknown codes map to info."""
    definition = CATEGORIES.get(category_code)
    return definition.offer_type if definition else OfferType.INFO


def get_category(code: str) -> Optional[CategoryDefinition]:
    return CATEGORIES.get(code)
