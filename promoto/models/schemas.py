"""Promoto — Pipeline Value Objects."""

from datetime import date
from typing import List, Optional
from pydantic import BaseModel


class Classification(BaseModel):
    """Classifier output for one post."""

    category: str
    event_identifier: Optional[str] = None
    event_date: Optional[date] = None
    promotion_end_date: date


class SweepResult(BaseModel):
    """Outcome of one expiration sweep."""

    total: int = 0
    success: int = 0
    failed: int = 0
    errors: List[str] = []


class TrackingComponents(BaseModel):
    r: str
    c: str
    utm_source: str
    utm_medium: str
    utm_campaign: str
    utm_content: str


class GeneratedLink(BaseModel):
    final_url: str
    components: TrackingComponents


class ParsedTrackingUrl(BaseModel):
    """Fields recovered from a tracking URL; missing ones are None."""

    rid: Optional[str] = None
    pi: Optional[str] = None
    pk: Optional[str] = None
    ps: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_content: Optional[str] = None


class LinkValidation(BaseModel):
    valid: bool
    errors: List[str] = []


# ── Inbound webhook (Ayrshare) ──


class AyrsharePostId(BaseModel):
    platform: str = ""
    postId: Optional[str] = None
    postUrl: Optional[str] = None


class AyrsharePost(BaseModel):
    id: Optional[str] = None
    postIds: List[AyrsharePostId] = []
    post: Optional[str] = None
    mediaUrls: List[str] = []


class AyrshareWebhook(BaseModel):
    """Ayrshare delivery; unknown fields are kept for the stored payload."""

    model_config = {"extra": "allow"}

    post: Optional[AyrsharePost] = None
    status: Optional[str] = None
    profile: Optional[str] = None
    refId: Optional[str] = None


class WebhookResult(BaseModel):
    success: bool
    message: str
