"""AdSync - Meta API Response Models.

Typed views of the Graph API payloads the sync reads. Numeric fields arrive
as strings (Meta's convention) and are parsed later by the transformer, so
validators here only coerce to text and never reject a value.
"""

from datetime import date, timedelta, datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class RemoteCampaign(BaseModel):
    id: str
    name: str = ""
    status: str = ""
    objective: Optional[str] = None


class RemoteAdSet(BaseModel):
    id: str
    name: str = ""
    campaign_id: Optional[str] = None
    status: str = ""
    daily_budget: Optional[str] = None
    lifetime_budget: Optional[str] = None

    @field_validator("daily_budget", "lifetime_budget", mode="before")
    @classmethod
    def _text_budget(cls, v: Any) -> Optional[str]:
        return _as_text(v)

    @property
    def budget(self) -> Optional[float]:
        """Daily budget when set, lifetime budget otherwise."""
        for raw in (self.daily_budget, self.lifetime_budget):
            if raw:
                try:
                    return float(raw)
                except ValueError:
                    continue
        return None

    @property
    def daily_budget_amount(self) -> Optional[float]:
        try:
            return float(self.daily_budget) if self.daily_budget else None
        except ValueError:
            return None


class RemoteCreative(BaseModel):
    id: Optional[str] = None
    thumbnail_url: Optional[str] = None


class RemoteAd(BaseModel):
    id: str
    name: str = ""
    adset_id: Optional[str] = None
    status: str = ""
    creative: Optional[RemoteCreative] = None

    @property
    def creative_url(self) -> Optional[str]:
        return self.creative.thumbnail_url if self.creative else None


class ActionRecord(BaseModel):
    """One entry of an `actions` / `action_values` list, e.g. {"action_type": "purchase", "value": "3"}."""

    action_type: str = ""
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def _text_value(cls, v: Any) -> Optional[str]:
        return _as_text(v)


class RawInsight(BaseModel):
    """A single insight row for one ad over the requested range."""

    ad_id: Optional[str] = None
    date_start: str
    date_stop: Optional[str] = None
    spend: Optional[str] = None
    impressions: Optional[str] = None
    clicks: Optional[str] = None
    frequency: Optional[str] = None
    actions: List[ActionRecord] = Field(default_factory=list)
    action_values: List[ActionRecord] = Field(default_factory=list)

    @field_validator("spend", "impressions", "clicks", "frequency", mode="before")
    @classmethod
    def _text_numbers(cls, v: Any) -> Optional[str]:
        return _as_text(v)

    @field_validator("actions", "action_values", mode="before")
    @classmethod
    def _null_list(cls, v: Any) -> Any:
        return v or []


class DateRange(BaseModel):
    """Inclusive reporting window in ISO dates."""

    since: date
    until: date

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.since > self.until:
            raise ValueError(f"since ({self.since}) is after until ({self.until})")
        return self

    @classmethod
    def trailing(cls, days: int = 7, today: Optional[date] = None) -> "DateRange":
        """Window of `days` days back through today."""
        today = today or datetime.now(timezone.utc).date()
        return cls(since=today - timedelta(days=days), until=today)

    def as_time_range(self) -> dict[str, str]:
        return {"since": self.since.isoformat(), "until": self.until.isoformat()}
