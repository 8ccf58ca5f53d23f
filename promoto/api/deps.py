"""Promoto — Shared route dependencies."""

from fastapi import Depends, HTTPException
from sqlmodel import Session

from promoto.connectors.meta.client import MetaClient
from promoto.core.errors import PromotoError
from promoto.database import get_session
from promoto.services.classifier import Classifier
from promoto.services.promotion import PromotionService


async def get_meta_client():
    """Dependency — yields a Meta client and closes it after the request."""
    client = MetaClient()
    try:
        yield client
    finally:
        await client.close()


def get_classifier() -> Classifier:
    return Classifier()


def get_promotion_service(
    session: Session = Depends(get_session),
    client: MetaClient = Depends(get_meta_client),
    classifier: Classifier = Depends(get_classifier),
) -> PromotionService:
    return PromotionService(session, client, classifier)


def http_error(e: PromotoError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=str(e))
