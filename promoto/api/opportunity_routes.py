"""Promoto — Opportunity Routes."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from promoto.api.deps import http_error
from promoto.core.categories import OfferType
from promoto.core.errors import PromotoError
from promoto.database import get_session
from promoto.models.entities import OpportunityGoal, OpportunityStatus
from promoto.services import opportunities

router = APIRouter(prefix="/opportunities", tags=["Opportunities"])


class OpportunityCreate(BaseModel):
    restaurant_id: str
    name: str
    offer_type: OfferType
    goal: OpportunityGoal = OpportunityGoal.TRAFFIC
    slug: Optional[str] = None
    status: OpportunityStatus = OpportunityStatus.ACTIVE
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class OpportunityUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    offer_type: Optional[OfferType] = None
    goal: Optional[OpportunityGoal] = None
    status: Optional[OpportunityStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@router.get("")
def list_opportunities(rid: Optional[int] = None, session: Session = Depends(get_session)):
    return opportunities.list_opportunities(session, rid)


@router.get("/by-pk/{rid}/{pk}")
def get_by_pk(rid: int, pk: int, session: Session = Depends(get_session)):
    try:
        return opportunities.get_by_pk(session, rid, pk)
    except PromotoError as e:
        raise http_error(e)


@router.get("/{opportunity_id}")
def get_opportunity(opportunity_id: str, session: Session = Depends(get_session)):
    try:
        return opportunities.get_opportunity(session, opportunity_id)
    except PromotoError as e:
        raise http_error(e)


@router.post("")
def create_opportunity(body: OpportunityCreate, session: Session = Depends(get_session)):
    try:
        return opportunities.create_opportunity(session, **body.model_dump())
    except PromotoError as e:
        raise http_error(e)


@router.put("/{opportunity_id}")
def update_opportunity(
    opportunity_id: str, body: OpportunityUpdate, session: Session = Depends(get_session)
):
    updates = body.model_dump(exclude_unset=True)
    for key in ("offer_type", "goal", "status"):
        if updates.get(key) is not None:
            updates[key] = updates[key].value
    try:
        return opportunities.update_opportunity(session, opportunity_id, updates)
    except PromotoError as e:
        raise http_error(e)


@router.delete("/{opportunity_id}")
def delete_opportunity(opportunity_id: str, session: Session = Depends(get_session)):
    try:
        opportunities.delete_opportunity(session, opportunity_id)
    except PromotoError as e:
        raise http_error(e)
    return {"status": "deleted", "id": opportunity_id}
