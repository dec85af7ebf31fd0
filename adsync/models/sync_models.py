"""AdSync - Local Hierarchy Models.

Campaign ⊃ AdSet ⊃ Ad ⊃ MetaMetric (one row per ad per day).

Remote ids carry unique constraints: they are the join key that decides
create-vs-update, since local ids are only generated on first creation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityStatus(str, Enum):
    """Normalized delivery status of a campaign, ad set or ad."""

    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"
    OTHER = "other"

    @classmethod
    def from_remote(cls, value: Optional[str]) -> "EntityStatus":
        """Map a Meta status string (ACTIVE, PAUSED, DELETED...) onto the local enum."""
        normalized = (value or "").strip().upper()
        if normalized == "ACTIVE":
            return cls.ACTIVE
        if normalized == "PAUSED":
            return cls.PAUSED
        if normalized in ("ARCHIVED", "DELETED"):
            return cls.ARCHIVED
        return cls.OTHER


class NotificationType(str, Enum):
    ROAS_ALERT = "roas_alert"
    BUDGET_ALERT = "budget_alert"
    SYNC_ERROR = "sync_error"
    RECONNECT_REQUIRED = "reconnect_required"
    GENERAL = "general"


# ─────────────────────────────────────────────
# OWNERSHIP & CREDENTIALS
# ─────────────────────────────────────────────


class Client(SQLModel, table=True):
    """A client of an account owner. Campaigns belong to clients."""

    __tablename__ = "clients"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    name: str = Field(default="")
    created_at: datetime = Field(default_factory=_utcnow)


class MetaToken(SQLModel, table=True):
    """Encrypted Meta credential for one (user, ad account) pair."""

    __tablename__ = "meta_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "ad_account_id", name="uq_meta_token_account"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    encrypted_access_token: str
    ad_account_id: str = Field(default="", description="Meta ad account id, without act_")
    expires_at: datetime
    client_id: Optional[int] = Field(
        default=None,
        foreign_key="clients.id",
        description="Owner assigned to campaigns first seen on this account",
    )
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


# ─────────────────────────────────────────────
# HIERARCHY
# ─────────────────────────────────────────────


class Campaign(SQLModel, table=True):
    __tablename__ = "campaigns"

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: int = Field(foreign_key="clients.id", index=True)
    meta_campaign_id: str = Field(unique=True, index=True)
    campaign_name: str
    status: EntityStatus = Field(default=EntityStatus.OTHER)
    objective: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class AdSet(SQLModel, table=True):
    __tablename__ = "ad_sets"

    id: Optional[int] = Field(default=None, primary_key=True)
    campaign_id: int = Field(foreign_key="campaigns.id", index=True)
    meta_ad_set_id: str = Field(unique=True, index=True)
    ad_set_name: str
    budget: Optional[float] = None
    status: EntityStatus = Field(default=EntityStatus.OTHER)
    created_at: datetime = Field(default_factory=_utcnow)


class Ad(SQLModel, table=True):
    __tablename__ = "ads"

    id: Optional[int] = Field(default=None, primary_key=True)
    ad_set_id: int = Field(foreign_key="ad_sets.id", index=True)
    meta_ad_id: str = Field(unique=True, index=True)
    ad_name: str
    creative_url: Optional[str] = None
    status: EntityStatus = Field(default=EntityStatus.OTHER)
    created_at: datetime = Field(default_factory=_utcnow)


class MetaMetric(SQLModel, table=True):
    """Daily performance of one ad.

    Unique constraint on (ad_id, date) backs the atomic upsert: re-running a
    sync overwrites the row, concurrent syncs never duplicate it.
    """

    __tablename__ = "meta_metrics"
    __table_args__ = (UniqueConstraint("ad_id", "date", name="uq_meta_metric_ad_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    ad_id: int = Field(foreign_key="ads.id", index=True)
    date: str = Field(index=True, description="YYYY-MM-DD")
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    roas: float = 0.0
    ctr: float = 0.0
    cpc: float = 0.0
    cpm: float = 0.0
    cpa: float = 0.0
    frequency: float = 0.0
    add_to_cart: int = 0
    purchases: int = 0
    revenue: float = 0.0
    updated_at: datetime = Field(default_factory=_utcnow)


class Notification(SQLModel, table=True):
    """Append-only user notification. Written best-effort by the sync."""

    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    message: str
    type: NotificationType = Field(default=NotificationType.GENERAL)
    read_status: bool = False
    created_at: datetime = Field(default_factory=_utcnow, index=True)
