"""Unit tests for hierarchy persistence and credential storage.

WHAT: Upserts keyed by remote id / (ad, date), credential encryption
WHY: Re-running a sync must update rows in place, never duplicate them
"""

from sqlmodel import select

from adsync.connectors.meta.transformer import MetricValues
from adsync.models.remote_models import RemoteAd, RemoteAdSet, RemoteCampaign
from adsync.models.sync_models import (
    Ad,
    AdSet,
    Campaign,
    EntityStatus,
    MetaMetric,
    MetaToken,
)
from adsync.sync.repository import SyncRepository


def _tree(repo: SyncRepository, client_id: int):
    campaign_id = repo.upsert_campaign(
        RemoteCampaign(id="c1", name="Spring", status="ACTIVE"), client_id
    )
    ad_set_id = repo.upsert_ad_set(
        RemoteAdSet(id="as1", name="Broad", status="ACTIVE", daily_budget="50"), campaign_id
    )
    ad_id = repo.upsert_ad(RemoteAd(id="ad1", name="Video", status="ACTIVE"), ad_set_id)
    return campaign_id, ad_set_id, ad_id


class TestHierarchyUpserts:
    def test_known_campaign_is_updated_not_duplicated(self, session, client_row):
        repo = SyncRepository(session)
        first = repo.upsert_campaign(
            RemoteCampaign(id="c1", name="Spring", status="ACTIVE"), client_row.id
        )
        second = repo.upsert_campaign(
            RemoteCampaign(id="c1", name="Spring v2", status="PAUSED"), client_row.id
        )

        rows = session.exec(select(Campaign)).all()
        assert first == second
        assert len(rows) == 1
        assert rows[0].campaign_name == "Spring v2"
        assert rows[0].status == EntityStatus.PAUSED
        assert rows[0].last_synced_at is not None

    def test_find_campaign_by_remote_id(self, session, client_row):
        repo = SyncRepository(session)
        local_id = repo.upsert_campaign(RemoteCampaign(id="c9", name="X"), client_row.id)

        assert repo.find_campaign("c9").id == local_id
        assert repo.find_campaign("missing") is None

    def test_ad_set_budget_and_ad_creative(self, session, client_row):
        repo = SyncRepository(session)
        campaign_id = repo.upsert_campaign(RemoteCampaign(id="c1", name="C"), client_row.id)
        ad_set_id = repo.upsert_ad_set(
            RemoteAdSet(id="as1", name="A", status="DELETED", lifetime_budget="900"), campaign_id
        )
        repo.upsert_ad(
            RemoteAd.model_validate(
                {"id": "ad1", "name": "Ad", "status": "WITH_ISSUES",
                 "creative": {"id": "cr1", "thumbnail_url": "https://cdn.test/t.jpg"}}
            ),
            ad_set_id,
        )

        ad_set = session.exec(select(AdSet)).one()
        ad = session.exec(select(Ad)).one()
        assert ad_set.budget == 900.0
        assert ad_set.status == EntityStatus.ARCHIVED
        assert ad.creative_url == "https://cdn.test/t.jpg"
        assert ad.status == EntityStatus.OTHER

    def test_first_client_id(self, session, client_row):
        repo = SyncRepository(session)
        assert repo.first_client_id("user-1") == client_row.id
        assert repo.first_client_id("nobody") is None


class TestMetricUpsert:
    def test_same_ad_date_twice_yields_one_identical_row(self, session, client_row):
        repo = SyncRepository(session)
        _, _, ad_id = _tree(repo, client_row.id)
        values = MetricValues(date="2026-10-11", spend=100, impressions=1000, clicks=10, ctr=1.0, cpc=10.0)

        first = repo.upsert_metric(ad_id, values)
        second = repo.upsert_metric(ad_id, values)

        rows = session.exec(select(MetaMetric)).all()
        assert first == second
        assert len(rows) == 1
        assert rows[0].spend == 100
        assert rows[0].ctr == 1.0
        assert rows[0].cpc == 10.0

    def test_new_values_overwrite_existing_row(self, session, client_row):
        repo = SyncRepository(session)
        _, _, ad_id = _tree(repo, client_row.id)
        repo.upsert_metric(ad_id, MetricValues(date="2026-10-11", spend=10))
        repo.upsert_metric(ad_id, MetricValues(date="2026-10-11", spend=25, roas=2.5))
        repo.upsert_metric(ad_id, MetricValues(date="2026-10-12", spend=5))

        rows = session.exec(select(MetaMetric).order_by(MetaMetric.date)).all()
        assert [(r.date, r.spend) for r in rows] == [("2026-10-11", 25), ("2026-10-12", 5)]
        assert rows[0].roas == 2.5


class TestCredentialStore:
    def test_token_stored_encrypted_and_decrypted_on_read(self, credentials, session, future):
        credentials.store_credential("user-1", "plain-token", "123", future)

        row = session.exec(select(MetaToken)).one()
        assert row.encrypted_access_token != "plain-token"

        credential = credentials.get_credential("user-1")
        assert credential.token == "plain-token"
        assert credential.ad_account_id == "123"
        assert "plain-token" not in repr(credential)

    def test_expired_credential_is_not_returned(self, credentials, past):
        credentials.store_credential("user-1", "tok", "123", past)

        assert credentials.get_credential("user-1") is None
        assert credentials.list_credentials("user-1")[0].is_expired()

    def test_store_replaces_token_for_same_account(self, credentials, session, future):
        credentials.store_credential("user-1", "old", "123", future)
        credentials.store_credential("user-1", "new", "123", future, client_id=7)

        assert len(session.exec(select(MetaToken)).all()) == 1
        credential = credentials.get_credential("user-1")
        assert credential.token == "new"
        assert credential.client_id == 7
