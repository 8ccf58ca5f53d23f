"""Promoto — Scheduler Routes."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from promoto.api.deps import get_meta_client
from promoto.connectors.meta.client import MetaClient
from promoto.database import get_session
from promoto.models.schemas import SweepResult
from promoto.services.expiration import ExpirationSweeper

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])


@router.post("/expire-posts", response_model=SweepResult)
async def expire_posts(
    today: Optional[date] = None,
    session: Session = Depends(get_session),
    client: MetaClient = Depends(get_meta_client),
):
    """Run the expiration sweep now (same result as the daily job)."""
    return await ExpirationSweeper(session, client).sweep(today)
