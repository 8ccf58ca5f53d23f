"""Promoto — Tracking Link Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from promoto.database import get_session
from promoto.models.schemas import GeneratedLink, LinkValidation, ParsedTrackingUrl
from promoto.services import tracking_links

router = APIRouter(prefix="/tracking-links", tags=["Tracking Links"])


class GenerateRequest(BaseModel):
    rid: int
    pi: int
    pk: int
    ps: str
    destination_url: str
    opportunity_slug: str
    category_code: str
    version: int = 1
    save: bool = False


class GenerateMetaRequest(BaseModel):
    rid: int
    pk: int
    destination_url: str
    opportunity_slug: str
    category_code: str
    version: int = 1


class UrlRequest(BaseModel):
    url: str


@router.get("")
def list_links(
    rid: Optional[int] = None, pk: Optional[int] = None, session: Session = Depends(get_session)
):
    return tracking_links.list_tracking_links(session, rid, pk)


@router.get("/platforms")
def platforms():
    return [
        {"id": pi, "medium": medium} for pi, medium in tracking_links.PLATFORM_MEDIUM.items()
    ]


@router.post("/generate", response_model=GeneratedLink)
def generate(body: GenerateRequest, session: Session = Depends(get_session)):
    try:
        link = tracking_links.build_tracking_link(
            rid=body.rid,
            pi=body.pi,
            pk=body.pk,
            ps=body.ps,
            destination_url=body.destination_url,
            opportunity_slug=body.opportunity_slug,
            category_code=body.category_code,
            version=body.version,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if body.save:
        tracking_links.save_tracking_link(
            session, link, body.rid, body.pi, body.pk, body.ps, body.destination_url
        )
    return link


@router.post("/generate-meta", response_model=GeneratedLink)
def generate_meta(body: GenerateMetaRequest):
    """Link for Meta ads; Meta fills in the ad id through the {{ad.id}} macro."""
    try:
        return tracking_links.build_meta_tracking_link(**body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/parse", response_model=ParsedTrackingUrl)
def parse(body: UrlRequest):
    parsed = tracking_links.parse_tracking_url(body.url)
    if parsed is None:
        raise HTTPException(status_code=400, detail="Invalid URL format")
    return parsed


@router.post("/validate", response_model=LinkValidation)
def validate(body: UrlRequest):
    return tracking_links.validate_tracking_url(body.url)
