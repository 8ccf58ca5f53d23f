"""Promoto — Meta Targeting Builder.

Turns a category targeting template plus a restaurant geo point into the
targeting spec accepted by the ad set endpoint.
"""

from typing import Any, Dict, List, Optional

DEFAULT_AGE_MIN = 18
DEFAULT_AGE_MAX = 65

# Radius for on-site categories by city size
AREA_RADIUS_KM = {
    "S-CITY": 5,
    "M-CITY": 10,
    "L-CITY": 15,
}
DEFAULT_RADIUS_KM = 10


def radius_for_area(area: Optional[str]) -> float:
    return AREA_RADIUS_KM.get(area or "", DEFAULT_RADIUS_KM)


def build_targeting(
    lat: float,
    lng: float,
    radius_km: float,
    template: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Build targeting from a category template and a geo circle."""
    template = template or {}
    targeting: Dict[str, Any] = {
        "geo_locations": {
            "custom_locations": [
                {
                    "latitude": lat,
                    "longitude": lng,
                    "radius": radius_km,
                    "distance_unit": "kilometer",
                }
            ]
        },
        "age_min": template.get("age_min") or DEFAULT_AGE_MIN,
        "age_max": template.get("age_max") or DEFAULT_AGE_MAX,
        "publisher_platforms": ["facebook", "instagram"],
        "facebook_positions": ["feed", "story", "facebook_reels"],
        "instagram_positions": ["stream", "story", "reels"],
    }

    # 0 means "all" in the template editor; Meta expects the key omitted
    genders: List[int] = [g for g in template.get("genders") or [] if g in (1, 2)]
    if genders:
        targeting["genders"] = genders

    interests = [
        {"id": str(i["id"]), "name": i.get("name", "")}
        for i in template.get("interests") or []
        if i.get("id")
    ]
    if interests:
        targeting["flexible_spec"] = [{"interests": interests}]

    return targeting
