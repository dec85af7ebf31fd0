"""AdSync - Sync Orchestrator.

Entry point for a sync run:

  Initialized → FetchingAccounts → (ReconcilingAccount)* → Aggregating
              → Completed | CompletedWithErrors

Accounts are independent and run concurrently up to
`sync_max_concurrent_accounts`, each bounded by `sync_account_timeout`.
There is no retry at this level; retries live in MetaClient. Partial
failures are reported in the returned RunResult, never raised.
"""

import asyncio
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from sqlmodel import Session

from adsync.config import settings
from adsync.connectors.meta.client import MetaAuthError, MetaClient
from adsync.connectors.meta.endpoints import MetaEndpoints
from adsync.core.security import TokenDecryptionError
from adsync.models.remote_models import DateRange
from adsync.models.sync_result import RunResult, RunState
from adsync.sync.credentials import CredentialStore, StoredCredential
from adsync.sync.notifications import (
    NotificationDispatcher,
    notify_reconnect,
    notify_sync_error,
)
from adsync.sync.reconciler import AccountFetchError, ReconciliationEngine
from adsync.sync.repository import SyncRepository
from adsync.core.logging import get_logger

logger = get_logger("sync.orchestrator")


class SyncOrchestrator:
    """Runs reconciliation for one user or every connected account."""

    def __init__(
        self,
        client: MetaClient,
        credentials: CredentialStore,
        session_factory: Callable[[], Session],
        dispatcher: NotificationDispatcher,
        max_concurrent_accounts: int | None = None,
        account_timeout: float | None = None,
    ):
        self.client = client
        self.credentials = credentials
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.max_concurrent_accounts = (
            max_concurrent_accounts or settings.sync_max_concurrent_accounts
        )
        self.account_timeout = (
            account_timeout if account_timeout is not None else settings.sync_account_timeout
        )

    # ── Public entry points ──

    async def run_sync(
        self, user_id: str, date_range: Optional[DateRange] = None
    ) -> RunResult:
        """Sync every account of one user."""
        return await self._run(user_id, date_range)

    async def run_sync_all_accounts(
        self, date_range: Optional[DateRange] = None
    ) -> RunResult:
        """Sync every stored account. Used by the daily scheduler."""
        return await self._run(None, date_range)

    # ── Run ──

    async def _run(
        self, user_id: Optional[str], date_range: Optional[DateRange]
    ) -> RunResult:
        date_range = date_range or DateRange.trailing(settings.sync_window_days)
        run = RunResult()
        scope = f"user {user_id}" if user_id else "all accounts"
        logger.info(f"Sync run for {scope}: {date_range.since} → {date_range.until}")

        self._transition(run, RunState.FETCHING_ACCOUNTS)
        # Storage being unreachable is unrecoverable and propagates
        stored = await asyncio.to_thread(self.credentials.list_credentials, user_id)
        if user_id and not stored:
            run.errors.append(f"no Meta credential connected for user {user_id}")

        eligible: List[StoredCredential] = []
        for cred in stored:
            if not cred.ad_account_id:
                logger.warning(f"Credential of user {cred.user_id} has no ad account id, skipping")
                run.accounts_skipped += 1
            elif cred.is_expired():
                logger.warning(
                    f"Credential expired for user {cred.user_id}, requesting reconnection",
                    extra={"account_id": cred.ad_account_id},
                )
                notify_reconnect(self.dispatcher, cred.user_id, cred.ad_account_id)
                run.accounts_skipped += 1
                run.needs_reconnection = True
            else:
                eligible.append(cred)

        self._transition(run, RunState.RECONCILING_ACCOUNT)
        semaphore = asyncio.Semaphore(self.max_concurrent_accounts)

        async def bounded(cred: StoredCredential) -> RunResult:
            async with semaphore:
                return await self._sync_account(cred, date_range)

        account_results = await asyncio.gather(*(bounded(c) for c in eligible))

        self._transition(run, RunState.AGGREGATING)
        by_user: Dict[str, List[RunResult]] = defaultdict(list)
        for cred, account_result in zip(eligible, account_results):
            run.merge(account_result)
            by_user[cred.user_id].append(account_result)

        for uid, results in by_user.items():
            error_count = sum(len(r.errors) for r in results)
            if error_count and not all(r.needs_reconnection for r in results):
                notify_sync_error(self.dispatcher, uid, f"{error_count} errors occurred.")

        run.finish()
        logger.info(
            f"Sync run {run.state.value}: {run.accounts_synced} accounts, "
            f"{run.campaigns_processed} campaigns, {run.ads_processed} ads, "
            f"{run.metrics_stored} metrics, {len(run.errors)} errors"
        )
        return run

    async def _sync_account(
        self, stored: StoredCredential, date_range: DateRange
    ) -> RunResult:
        """Reconcile one account. Always returns a result.

        The engine fills `result` in place, so an account aborted by a rejected
        credential or a timeout still reports the work it committed before.
        """
        account_id = stored.ad_account_id
        result = RunResult(account_id=account_id)
        try:
            credential = self.credentials.decrypt(stored)
        except TokenDecryptionError as e:
            result.errors.append(f"account {account_id}: {e}")
            return result.finish()

        endpoints = MetaEndpoints(self.client, credential.token)
        with self.session_factory() as session:
            engine = ReconciliationEngine(endpoints, SyncRepository(session), self.dispatcher)
            try:
                await asyncio.wait_for(
                    engine.reconcile(credential, date_range, result),
                    timeout=self.account_timeout,
                )
            except MetaAuthError as e:
                logger.error(
                    f"Credential rejected by Meta: {e}", extra={"account_id": account_id}
                )
                notify_reconnect(self.dispatcher, stored.user_id, account_id)
                result.needs_reconnection = True
                result.errors.append(f"account {account_id}: authentication failed, reconnect required")
            except AccountFetchError as e:
                logger.error(str(e), extra={"account_id": account_id})
                result.errors.append(f"account {account_id}: {e}")
            except asyncio.TimeoutError:
                logger.error(
                    f"Account sync exceeded {self.account_timeout}s and was cancelled",
                    extra={"account_id": account_id},
                )
                result.errors.append(
                    f"account {account_id}: timed out after {self.account_timeout}s"
                )
        return result.finish()

    @staticmethod
    def _transition(run: RunResult, state: RunState) -> None:
        logger.debug(f"Run state {run.state.value} → {state.value}")
        run.state = state
