"""AdSync - Meta API Endpoints.

Typed fetch functions for each Marketing API resource the sync walks.
A MetaEndpoints instance holds one decrypted token for the duration of one
account's reconciliation and is discarded afterwards.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from adsync.config import settings
from adsync.connectors.meta.client import MetaAPIError, MetaClient
from adsync.models.remote_models import (
    DateRange,
    RawInsight,
    RemoteAd,
    RemoteAdSet,
    RemoteCampaign,
)
from adsync.core.logging import get_logger

logger = get_logger("meta.endpoints")

# Default fields requested from Meta
CAMPAIGN_FIELDS = "id,name,status,objective,created_time,updated_time"
ADSET_FIELDS = "id,name,campaign_id,status,daily_budget,lifetime_budget,created_time"
AD_FIELDS = "id,name,adset_id,status,creative{id,thumbnail_url},created_time"
INSIGHT_FIELDS = (
    "ad_id,date_start,date_stop,spend,impressions,clicks,"
    "actions,action_values,frequency"
)

M = TypeVar("M", bound=BaseModel)


def account_path(ad_account_id: str) -> str:
    """Graph path for an ad account; accepts ids with or without the act_ prefix."""
    return ad_account_id if ad_account_id.startswith("act_") else f"act_{ad_account_id}"


class MetaEndpoints:
    """Fetch typed collections from Meta for one credential."""

    def __init__(
        self,
        client: MetaClient,
        access_token: str,
        batch_size: int | None = None,
        batch_pause: float | None = None,
    ):
        self.client = client
        self._access_token = access_token
        self.batch_size = batch_size or settings.insight_batch_size
        self.batch_pause = (
            batch_pause if batch_pause is not None else settings.insight_batch_pause
        )

    def __repr__(self) -> str:
        return "<MetaEndpoints token=[REDACTED]>"

    def _parse_rows(self, rows: List[Dict[str, Any]], model: Type[M], kind: str) -> List[M]:
        parsed: List[M] = []
        for row in rows:
            try:
                parsed.append(model.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    f"Skipping malformed {kind} row: {e.error_count()} validation errors",
                    extra={"entity_id": row.get("id", "")},
                )
        return parsed

    # ── Structure Endpoints (Campaigns, Adsets, Ads) ──

    async def list_campaigns(self, ad_account_id: str) -> List[RemoteCampaign]:
        """Fetch all campaigns of an ad account."""
        rows = await self.client.paginated_get(
            f"{account_path(ad_account_id)}/campaigns",
            self._access_token,
            {"fields": CAMPAIGN_FIELDS, "limit": settings.meta_page_limit},
        )
        return self._parse_rows(rows, RemoteCampaign, "campaign")

    async def list_ad_sets(self, campaign_id: str) -> List[RemoteAdSet]:
        """Fetch all ad sets of a campaign."""
        rows = await self.client.paginated_get(
            f"{campaign_id}/adsets",
            self._access_token,
            {"fields": ADSET_FIELDS, "limit": settings.meta_page_limit},
        )
        return self._parse_rows(rows, RemoteAdSet, "ad set")

    async def list_ads(self, ad_set_id: str) -> List[RemoteAd]:
        """Fetch all ads of an ad set."""
        rows = await self.client.paginated_get(
            f"{ad_set_id}/ads",
            self._access_token,
            {"fields": AD_FIELDS, "limit": settings.meta_page_limit},
        )
        return self._parse_rows(rows, RemoteAd, "ad")

    # ── Ad-Level Insights ──

    async def get_insights(
        self, ad_id: str, date_range: DateRange
    ) -> Optional[RawInsight]:
        """Fetch the insight row of one ad. None when Meta has no row for it."""
        result = await self.client.request(
            "GET",
            f"{ad_id}/insights",
            self._access_token,
            {
                "fields": INSIGHT_FIELDS,
                "time_range": json.dumps(date_range.as_time_range()),
            },
        )
        data = result.get("data") or []
        rows = self._parse_rows(data, RawInsight, "insight")
        if data and not rows:
            raise MetaAPIError(
                f"Malformed insight response for ad {ad_id}", endpoint=f"{ad_id}/insights"
            )
        return rows[0] if rows else None

    async def get_batch_insights(
        self, ad_ids: List[str], date_range: DateRange
    ) -> Dict[str, Optional[RawInsight] | BaseException]:
        """Fetch insights for many ads, `batch_size` at a time.

        Each value is the insight, None, or the exception that ad's fetch
        raised; one failing ad never cancels its batch siblings.
        """
        results: Dict[str, Optional[RawInsight] | BaseException] = {}
        for start in range(0, len(ad_ids), self.batch_size):
            batch = ad_ids[start : start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.get_insights(ad_id, date_range) for ad_id in batch),
                return_exceptions=True,
            )
            for ad_id, outcome in zip(batch, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                results[ad_id] = outcome

            # Small delay between batches to respect rate limits
            if start + self.batch_size < len(ad_ids):
                await self.client.sleep(self.batch_pause)
        return results

    # ── Token Validation ──

    async def validate_token(self) -> Dict[str, Any]:
        """Check if the access token is valid and return metadata."""
        result = await self.client.request(
            "GET",
            "debug_token",
            self._access_token,
            {"input_token": self._access_token},
        )
        token_data = result.get("data", {})
        return {
            "valid": token_data.get("is_valid", False),
            "expires_at": token_data.get("expires_at", 0),
            "scopes": token_data.get("scopes", []),
        }
