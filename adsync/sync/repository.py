"""AdSync - Hierarchy Persistence.

Every write is a single INSERT ... ON CONFLICT DO UPDATE keyed by a unique
constraint (remote id, or ad + date for metrics), committed on its own.
Concurrent syncs of the same node therefore converge on one row
(last writer wins) instead of racing a read-then-write.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session, SQLModel, select

from adsync.connectors.meta.transformer import MetricValues
from adsync.core.metric_registry import METRICS
from adsync.models.remote_models import RemoteAd, RemoteAdSet, RemoteCampaign
from adsync.models.sync_models import (
    Ad,
    AdSet,
    Campaign,
    Client,
    EntityStatus,
    MetaMetric,
)
from adsync.core.logging import get_logger

logger = get_logger("sync.repository")


class SyncRepository:
    """Idempotent upserts for the Campaign ⊃ AdSet ⊃ Ad ⊃ MetaMetric tree."""

    def __init__(self, session: Session):
        self.session = session

    def _insert(self, model: type[SQLModel]):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise NotImplementedError(f"No atomic upsert for dialect {dialect!r}")

    def _upsert(
        self,
        model: type[SQLModel],
        conflict_cols: list[str],
        insert_values: Dict[str, Any],
        update_values: Dict[str, Any],
    ) -> int:
        stmt = self._insert(model).values(**insert_values)
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_cols, set_=update_values
        ).returning(model.id)
        try:
            row_id = self.session.connection().execute(stmt).scalar_one()
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return row_id

    # ── Lookups ──

    def find_campaign(self, meta_campaign_id: str) -> Optional[Campaign]:
        return self.session.exec(
            select(Campaign).where(Campaign.meta_campaign_id == meta_campaign_id)
        ).first()

    def first_client_id(self, user_id: str) -> Optional[int]:
        return self.session.exec(
            select(Client.id).where(Client.user_id == user_id).order_by(Client.id)
        ).first()

    # ── Upserts ──

    def upsert_campaign(self, remote: RemoteCampaign, client_id: int) -> int:
        """Create or refresh a campaign. `client_id` only applies on creation."""
        now = datetime.now(timezone.utc)
        mutable = {
            "campaign_name": remote.name,
            "status": EntityStatus.from_remote(remote.status),
            "objective": remote.objective,
            "last_synced_at": now,
            "updated_at": now,
        }
        return self._upsert(
            Campaign,
            ["meta_campaign_id"],
            {"meta_campaign_id": remote.id, "client_id": client_id, "created_at": now, **mutable},
            mutable,
        )

    def upsert_ad_set(self, remote: RemoteAdSet, campaign_id: int) -> int:
        mutable = {
            "ad_set_name": remote.name,
            "budget": remote.budget,
            "status": EntityStatus.from_remote(remote.status),
        }
        return self._upsert(
            AdSet,
            ["meta_ad_set_id"],
            {
                "meta_ad_set_id": remote.id,
                "campaign_id": campaign_id,
                "created_at": datetime.now(timezone.utc),
                **mutable,
            },
            mutable,
        )

    def upsert_ad(self, remote: RemoteAd, ad_set_id: int) -> int:
        mutable = {
            "ad_name": remote.name,
            "creative_url": remote.creative_url,
            "status": EntityStatus.from_remote(remote.status),
        }
        return self._upsert(
            Ad,
            ["meta_ad_id"],
            {
                "meta_ad_id": remote.id,
                "ad_set_id": ad_set_id,
                "created_at": datetime.now(timezone.utc),
                **mutable,
            },
            mutable,
        )

    def upsert_metric(self, ad_id: int, values: MetricValues) -> int:
        """Store the full metric set for (ad, date) in one statement."""
        fields = {name: getattr(values, name) for name in METRICS}
        fields["updated_at"] = datetime.now(timezone.utc)
        row_id = self._upsert(
            MetaMetric,
            ["ad_id", "date"],
            {"ad_id": ad_id, "date": values.date, **fields},
            fields,
        )
        logger.debug(f"Stored metrics for ad {ad_id} on {values.date}")
        return row_id
