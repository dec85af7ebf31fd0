"""AdSync - Reconciliation Engine.

Walks one ad account's remote hierarchy and maps it onto local rows:

  campaigns → ad sets → ads   (sequential structure walk, upsert by remote id)
  ads → insights → metrics    (batched concurrent fetch, upsert by ad + date)

A failure on one node is recorded and its siblings carry on. Only failing
to list the account's campaigns (nothing to iterate) or a rejected
credential (every further call would fail too) abort the account.
"""

from typing import List, NamedTuple, Optional

from adsync.config import settings
from adsync.connectors.meta.client import MetaAPIError, MetaAuthError
from adsync.connectors.meta.endpoints import MetaEndpoints
from adsync.connectors.meta.transformer import calculate
from adsync.models.remote_models import DateRange, RemoteAd, RemoteAdSet, RemoteCampaign
from adsync.models.sync_result import RunResult, RunState
from adsync.sync.credentials import Credential
from adsync.sync.notifications import NotificationDispatcher, check_budget, check_roas
from adsync.sync.repository import SyncRepository
from adsync.core.logging import get_logger

logger = get_logger("sync.reconciler")


class AccountFetchError(Exception):
    """The account's campaign list could not be retrieved."""

    def __init__(self, ad_account_id: str, cause: Exception):
        self.ad_account_id = ad_account_id
        self.cause = cause
        super().__init__(f"Could not list campaigns for account {ad_account_id}: {cause}")


class OwnershipError(Exception):
    """A newly discovered campaign has no client to belong to."""


class AdWork(NamedTuple):
    """A resolved ad waiting for its insights."""

    ad_id: int
    remote: RemoteAd
    ad_set: RemoteAdSet
    campaign: RemoteCampaign


class ReconciliationEngine:
    def __init__(
        self,
        endpoints: MetaEndpoints,
        repository: SyncRepository,
        dispatcher: NotificationDispatcher,
        assign_unmapped_to_first_client: bool | None = None,
    ):
        self.endpoints = endpoints
        self.repository = repository
        self.dispatcher = dispatcher
        self.assign_unmapped_to_first_client = (
            settings.assign_unmapped_campaigns_to_first_client
            if assign_unmapped_to_first_client is None
            else assign_unmapped_to_first_client
        )

    async def reconcile(
        self,
        credential: Credential,
        date_range: DateRange,
        result: Optional[RunResult] = None,
    ) -> RunResult:
        """Sync one account. Raises AccountFetchError or MetaAuthError to abort it.

        Counters and node errors accumulate on `result` as the walk goes, so a
        caller that passes its own keeps the committed work of an aborted run.
        """
        account_id = credential.ad_account_id
        if result is None:
            result = RunResult(account_id=account_id)
        result.state = RunState.RECONCILING_ACCOUNT
        log_extra = {"account_id": account_id}

        try:
            campaigns = await self.endpoints.list_campaigns(account_id)
        except MetaAuthError:
            raise
        except MetaAPIError as e:
            raise AccountFetchError(account_id, e) from e

        logger.info(f"Reconciling {len(campaigns)} campaigns", extra=log_extra)

        pending: List[AdWork] = []
        for campaign in campaigns:
            pending.extend(await self._sync_campaign(credential, campaign, result))

        await self._sync_metrics(credential.user_id, pending, date_range, result)

        result.accounts_synced = 1
        logger.info(
            f"Account reconciled: {result.campaigns_processed} campaigns, "
            f"{result.ads_processed} ads, {result.metrics_stored} metrics, "
            f"{len(result.errors)} errors",
            extra=log_extra,
        )
        return result

    # ── Ownership ──

    def _resolve_owner(self, credential: Credential) -> int:
        if credential.client_id is not None:
            return credential.client_id
        if self.assign_unmapped_to_first_client:
            client_id = self.repository.first_client_id(credential.user_id)
            if client_id is not None:
                logger.warning(
                    f"No client mapped for account; assigning new campaign to first client {client_id}",
                    extra={"account_id": credential.ad_account_id},
                )
                return client_id
        raise OwnershipError(
            f"no client mapped for ad account {credential.ad_account_id}"
        )

    # ── Structure Walk ──

    async def _sync_campaign(
        self, credential: Credential, campaign: RemoteCampaign, result: RunResult
    ) -> List[AdWork]:
        try:
            existing = self.repository.find_campaign(campaign.id)
            client_id = existing.client_id if existing else self._resolve_owner(credential)
            campaign_local_id = self.repository.upsert_campaign(campaign, client_id)
            result.campaigns_processed += 1
            ad_sets = await self.endpoints.list_ad_sets(campaign.id)
        except MetaAuthError:
            raise
        except Exception as e:
            entry = result.record_error("campaign", campaign.name, campaign.id, e)
            logger.error(entry, extra={"entity_id": campaign.id})
            return []

        work: List[AdWork] = []
        for ad_set in ad_sets:
            work.extend(await self._sync_ad_set(campaign, campaign_local_id, ad_set, result))
        return work

    async def _sync_ad_set(
        self,
        campaign: RemoteCampaign,
        campaign_local_id: int,
        ad_set: RemoteAdSet,
        result: RunResult,
    ) -> List[AdWork]:
        try:
            ad_set_local_id = self.repository.upsert_ad_set(ad_set, campaign_local_id)
            result.ad_sets_processed += 1
            ads = await self.endpoints.list_ads(ad_set.id)
        except MetaAuthError:
            raise
        except Exception as e:
            entry = result.record_error("ad set", ad_set.name, ad_set.id, e)
            logger.error(entry, extra={"entity_id": ad_set.id})
            return []

        work: List[AdWork] = []
        for ad in ads:
            try:
                ad_local_id = self.repository.upsert_ad(ad, ad_set_local_id)
            except Exception as e:
                entry = result.record_error("ad", ad.name, ad.id, e)
                logger.error(entry, extra={"entity_id": ad.id})
                continue
            result.ads_processed += 1
            work.append(AdWork(ad_local_id, ad, ad_set, campaign))
        return work

    # ── Metrics ──

    async def _sync_metrics(
        self,
        user_id: str,
        pending: List[AdWork],
        date_range: DateRange,
        result: RunResult,
    ) -> None:
        if not pending:
            return
        insights = await self.endpoints.get_batch_insights(
            [w.remote.id for w in pending], date_range
        )
        for work in pending:
            outcome = insights.get(work.remote.id)
            if isinstance(outcome, MetaAuthError):
                raise outcome
            if isinstance(outcome, BaseException):
                entry = result.record_error("insights for ad", work.remote.name, work.remote.id, outcome)
                logger.error(entry, extra={"entity_id": work.remote.id})
                continue
            if outcome is None:
                continue

            try:
                values = calculate(outcome)
                self.repository.upsert_metric(work.ad_id, values)
            except Exception as e:
                entry = result.record_error("metrics for ad", work.remote.name, work.remote.id, e)
                logger.error(entry, extra={"entity_id": work.remote.id})
                continue

            result.metrics_stored += 1
            self._check_thresholds(user_id, work, values.roas, values.spend)

    def _check_thresholds(self, user_id: str, work: AdWork, roas: float, spend: float) -> None:
        check_roas(self.dispatcher, user_id, work.campaign.name, roas)
        check_budget(
            self.dispatcher,
            user_id,
            work.campaign.name,
            spend,
            work.ad_set.daily_budget_amount,
        )
