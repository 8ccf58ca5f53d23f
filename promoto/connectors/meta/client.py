"""Promoto — Meta Marketing API Client.

Thin async wrapper over the Graph API write calls the pipeline needs. Every
call is a single attempt: retrying a create could duplicate paid objects, so
backoff is left to the caller that owns the request.
"""

import json
from typing import Any, Dict, Optional

import httpx

from promoto.config import settings
from promoto.core.logging import get_logger

logger = get_logger("meta.client")

META_BASE = f"{settings.meta_base_url}/{settings.meta_api_version}"

# Statuses accepted by set_status
ACTIVE = "ACTIVE"
PAUSED = "PAUSED"
DELETED = "DELETED"


class MetaAPIError(Exception):
    """Raised when Meta API returns an error."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        error_code: int = 0,
        error_subcode: int = 0,
        user_message: str = "",
        fbtrace_id: str = "",
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.error_subcode = error_subcode
        self.user_message = user_message
        self.fbtrace_id = fbtrace_id
        super().__init__(message)

    @classmethod
    def from_body(cls, body: Dict[str, Any], status_code: int = 0) -> "MetaAPIError":
        error = body.get("error") or {}
        return cls(
            error.get("message") or f"Meta API error (HTTP {status_code})",
            status_code=status_code,
            error_code=error.get("code", 0) or 0,
            error_subcode=error.get("error_subcode", 0) or 0,
            user_message=error.get("error_user_msg") or error.get("error_user_title") or "",
            fbtrace_id=error.get("fbtrace_id", ""),
        )


class MetaClient:
    """Async HTTP client for Meta Marketing API."""

    def __init__(
        self, access_token: str | None = None, ad_account_id: str | None = None
    ):
        self.access_token = access_token or settings.meta_access_token
        account = ad_account_id or settings.meta_ad_account_id
        self.ad_account_id = account if account.startswith("act_") else f"act_{account}"
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        payload: Dict[str, Any] | None = None,
        params: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Make a single request and extract Meta's structured error, if any."""
        params = dict(params or {})
        params["access_token"] = self.access_token

        client = await self._get_client()
        logger.debug(f"Meta API {method} {url}")

        try:
            resp = await client.request(method, url, params=params, json=payload)
        except httpx.RequestError as e:
            raise MetaAPIError(f"Connection to Meta failed: {e}") from e

        try:
            body = resp.json()
        except json.JSONDecodeError:
            body = {}

        if resp.status_code >= 400 or (isinstance(body, dict) and body.get("error")):
            error = MetaAPIError.from_body(body if isinstance(body, dict) else {}, resp.status_code)
            logger.error(
                f"Meta API error {error.error_code}/{error.error_subcode}: {error}",
                extra={"status_code": resp.status_code},
            )
            raise error

        return body

    def _require_id(self, result: Dict[str, Any], what: str) -> str:
        object_id = result.get("id")
        if not object_id:
            raise MetaAPIError(f"Meta did not return an id for the new {what}")
        return str(object_id)

    # ── Campaigns ──

    async def create_campaign(self, rid: int, slug: str) -> str:
        """Create the per-restaurant campaign named "{rid}-{slug}"."""
        url = f"{META_BASE}/{self.ad_account_id}/campaigns"
        name = f"{rid}-{slug}"
        result = await self._request(
            "POST",
            url,
            {
                "name": name,
                "objective": "OUTCOME_TRAFFIC",
                "status": PAUSED,
                "special_ad_categories": [],
            },
        )
        campaign_id = self._require_id(result, "campaign")
        logger.info(f"Created campaign {campaign_id} ({name})")
        return campaign_id

    # ── Ad Sets ──

    async def create_ad_set(
        self,
        campaign_id: str,
        name: str,
        targeting: Dict[str, Any],
        daily_budget: float,
        beneficiary: str,
        page_id: str,
    ) -> str:
        url = f"{META_BASE}/{self.ad_account_id}/adsets"
        result = await self._request(
            "POST",
            url,
            {
                "campaign_id": campaign_id,
                "name": name,
                "status": ACTIVE,
                "daily_budget": int(round(daily_budget * 100)),  # minor units
                "billing_event": "IMPRESSIONS",
                "optimization_goal": "POST_ENGAGEMENT",
                "bid_strategy": "LOWEST_COST_WITHOUT_CAP",
                "promoted_object": {"page_id": page_id},
                "dsa_beneficiary": beneficiary,
                "dsa_payor": settings.meta_payor_name,
                "targeting": targeting,
            },
        )
        ad_set_id = self._require_id(result, "ad set")
        logger.info(f"Created ad set {ad_set_id} - {name}")
        return ad_set_id

    async def get_audience_estimate(self, targeting: Dict[str, Any]) -> Dict[str, Any] | None:
        """Best-effort audience size for a targeting spec."""
        url = f"{META_BASE}/{self.ad_account_id}/reachestimate"
        try:
            result = await self._request(
                "GET", url, params={"targeting_spec": json.dumps(targeting)}
            )
        except MetaAPIError as e:
            logger.warning(f"Audience estimate unavailable: {e}")
            return None
        data = result.get("data")
        if isinstance(data, list):
            return data[0] if data else None
        return data

    # ── Creatives & Ads ──

    async def create_creative(
        self,
        page_id: str,
        post_id: str,
        destination_url: str | None = None,
        url_tags: str | None = None,
    ) -> str:
        """Create a creative that boosts an existing page post."""
        url = f"{META_BASE}/{self.ad_account_id}/adcreatives"
        object_story_id = post_id if "_" in post_id else f"{page_id}_{post_id}"
        payload: Dict[str, Any] = {
            "name": f"Creative - {post_id}",
            "object_story_id": object_story_id,
            "degrees_of_freedom_spec": {
                "creative_features_spec": {
                    "standard_enhancements": {"enroll_status": "OPT_OUT"}
                }
            },
            "contextual_multi_ads": {"enroll_status": "OPT_OUT"},
        }
        if destination_url:
            payload["call_to_action"] = {
                "type": "LEARN_MORE",
                "value": {"link": destination_url},
            }
            if url_tags:
                payload["url_tags"] = url_tags

        result = await self._request("POST", url, payload)
        creative_id = self._require_id(result, "creative")
        logger.info(f"Created creative {creative_id} for post {post_id}")
        return creative_id

    async def create_ad(self, ad_set_id: str, creative_id: str, pk: int | None) -> str:
        """Create an ad; the final name embeds its own id and needs rename()."""
        url = f"{META_BASE}/{self.ad_account_id}/ads"
        prefix = f"pk{pk}" if pk is not None else "legacy"
        result = await self._request(
            "POST",
            url,
            {
                "name": f"{prefix}_pending",
                "adset_id": ad_set_id,
                "creative": {"creative_id": creative_id},
                "status": ACTIVE,
            },
        )
        ad_id = self._require_id(result, "ad")
        logger.info(f"Created ad {ad_id} in ad set {ad_set_id}")
        return ad_id

    # ── Object Updates ──

    async def rename(self, object_id: str, name: str) -> None:
        await self._request("POST", f"{META_BASE}/{object_id}", {"name": name})
        logger.info(f"Renamed {object_id} to {name}")

    async def set_status(self, object_id: str, status: str) -> None:
        if status not in (ACTIVE, PAUSED):
            raise ValueError(f"Unsupported status: {status}")
        await self._request("POST", f"{META_BASE}/{object_id}", {"status": status})
        logger.info(f"Updated {object_id} status to {status}")

    async def delete(self, object_id: str) -> None:
        """Mark an object deleted (Meta keeps it for reporting)."""
        await self._request("POST", f"{META_BASE}/{object_id}", {"status": DELETED})
        logger.info(f"Marked {object_id} deleted")
