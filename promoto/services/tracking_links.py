"""Promoto — Tracking Link Builder.

URL format:
  {destination}?r={rid}&c=.pi{PI}.pk{PK}.ps{PS}&utm_source=mysite
      &utm_medium={platform}&utm_campaign=pk{PK}-{slug}&utm_content={category}-v{version}

Building and parsing are pure; only the helpers at the bottom touch the database.
"""

import re
from typing import Dict, List, Optional
from urllib.parse import parse_qs, parse_qsl, urlencode, urlsplit, urlunsplit

from sqlmodel import Session, select

from promoto.core.logging import get_logger
from promoto.models.entities import TrackingLink
from promoto.models.schemas import (
    GeneratedLink,
    LinkValidation,
    ParsedTrackingUrl,
    TrackingComponents,
)

logger = get_logger("services.tracking_links")

UTM_SOURCE = "mysite"
META_PLATFORM_ID = 1
META_AD_ID_MACRO = "{{ad.id}}"  # Meta substitutes the served ad id

PLATFORM_MEDIUM: Dict[int, str] = {
    1: "meta",
    2: "google",
    3: "email",
    4: "influencer",
    5: "marketplace",
}

TRACKING_KEYS = ("r", "c", "utm_source", "utm_medium", "utm_campaign", "utm_content")

_PI = re.compile(r"\.pi(\d+)")
_PK = re.compile(r"\.pk(\d+)")
_PS = re.compile(r"\.ps(.+)$")  # last segment; may contain dots (macros)


def build_tracking_link(
    rid: int,
    pi: int,
    pk: int,
    ps: str,
    destination_url: str,
    opportunity_slug: str,
    category_code: str,
    version: int,
) -> GeneratedLink:
    """Append attribution parameters to destination_url.

    Existing query parameters are kept; tracking keys already present are
    replaced.
    """
    parts = urlsplit(destination_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Invalid destination URL: {destination_url}")

    components = TrackingComponents(
        r=str(rid),
        c=f".pi{pi}.pk{pk}.ps{ps}",
        utm_source=UTM_SOURCE,
        utm_medium=PLATFORM_MEDIUM.get(pi, "unknown"),
        utm_campaign=f"pk{pk}-{opportunity_slug}",
        utm_content=f"{category_code}-v{version}",
    )

    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in TRACKING_KEYS]
    query.extend((key, getattr(components, key)) for key in TRACKING_KEYS)
    # Braces stay literal so ad platform macros survive
    final_url = urlunsplit(parts._replace(query=urlencode(query, safe="{}")))

    return GeneratedLink(final_url=final_url, components=components)


def build_meta_tracking_link(
    rid: int,
    pk: int,
    destination_url: str,
    opportunity_slug: str,
    category_code: str,
    version: int,
) -> GeneratedLink:
    """Tracking link for Meta ads; the placement is the {{ad.id}} macro."""
    return build_tracking_link(
        rid=rid,
        pi=META_PLATFORM_ID,
        pk=pk,
        ps=META_AD_ID_MACRO,
        destination_url=destination_url,
        opportunity_slug=opportunity_slug,
        category_code=category_code,
        version=version,
    )


def url_tags(link: GeneratedLink) -> str:
    """Query string of the tracking parameters alone (creative url_tags)."""
    return urlencode(
        [(key, getattr(link.components, key)) for key in TRACKING_KEYS], safe="{}"
    )


def parse_tracking_url(url: str) -> Optional[ParsedTrackingUrl]:
    """Extract tracking fields from any URL. Returns None if unparseable."""
    try:
        parts = urlsplit(url)
    except ValueError:
        logger.warning(f"Failed to parse URL: {url}")
        return None
    if not parts.scheme or not parts.netloc:
        logger.warning(f"Failed to parse URL: {url}")
        return None

    params = {k: v[0] for k, v in parse_qs(parts.query).items() if v}
    c = params.get("c", "")
    pi, pk, ps = (_PI.search(c), _PK.search(c), _PS.search(c))

    return ParsedTrackingUrl(
        rid=params.get("r"),
        pi=pi.group(1) if pi else None,
        pk=pk.group(1) if pk else None,
        ps=ps.group(1) if ps else None,
        utm_source=params.get("utm_source"),
        utm_medium=params.get("utm_medium"),
        utm_campaign=params.get("utm_campaign"),
        utm_content=params.get("utm_content"),
    )


def validate_tracking_url(url: str) -> LinkValidation:
    parsed = parse_tracking_url(url)
    if parsed is None:
        return LinkValidation(valid=False, errors=["Invalid URL format"])

    checks = [
        (parsed.rid, "Missing r (restaurant ID) parameter"),
        (parsed.pi, "Missing pi (platform ID) in c parameter"),
        (parsed.pk, "Missing pk (opportunity key) in c parameter"),
        (parsed.ps, "Missing ps (placement ID) in c parameter"),
        (parsed.utm_source, "Missing utm_source parameter"),
        (parsed.utm_medium, "Missing utm_medium parameter"),
        (parsed.utm_campaign, "Missing utm_campaign parameter"),
        (parsed.utm_content, "Missing utm_content parameter"),
    ]
    errors = [message for value, message in checks if not value]
    return LinkValidation(valid=not errors, errors=errors)


# ── Persistence ──


def save_tracking_link(
    session: Session,
    link: GeneratedLink,
    rid: int,
    pi: int,
    pk: int,
    ps: str,
    destination_url: str,
    post_id: Optional[str] = None,
) -> TrackingLink:
    record = TrackingLink(
        rid=rid,
        pi=pi,
        pk=pk,
        ps=ps,
        post_id=post_id,
        destination_url=destination_url,
        final_url=link.final_url,
        c_param=link.components.c,
        utm_source=link.components.utm_source,
        utm_medium=link.components.utm_medium,
        utm_campaign=link.components.utm_campaign,
        utm_content=link.components.utm_content,
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    logger.info(f"Saved tracking link: pk={pk}, url={link.final_url}")
    return record


def list_tracking_links(
    session: Session, rid: Optional[int] = None, pk: Optional[int] = None
) -> List[TrackingLink]:
    query = select(TrackingLink).order_by(TrackingLink.created_at.desc())  # type: ignore
    if rid is not None:
        query = query.where(TrackingLink.rid == rid)
    if pk is not None:
        query = query.where(TrackingLink.pk == pk)
    return list(session.exec(query).all())
