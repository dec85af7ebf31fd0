"""AdSync - Sync Run Result."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel


class RunState(str, Enum):
    """Lifecycle of one sync run."""

    INITIALIZED = "initialized"
    FETCHING_ACCOUNTS = "fetching_accounts"
    RECONCILING_ACCOUNT = "reconciling_account"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"


class RunResult(BaseModel):
    """Counters and per-node errors for one account or a whole run.

    A non-empty `errors` list means the run is reported as failed even though
    the counted work was committed: "failed" reads as "partially synced".
    """

    state: RunState = RunState.INITIALIZED
    account_id: Optional[str] = None
    campaigns_processed: int = 0
    ad_sets_processed: int = 0
    ads_processed: int = 0
    metrics_stored: int = 0
    accounts_synced: int = 0
    accounts_skipped: int = 0
    needs_reconnection: bool = False
    errors: List[str] = []

    @property
    def success(self) -> bool:
        return not self.errors

    def record_error(self, level: str, name: str, remote_id: str, exc: BaseException | str) -> str:
        entry = f"{level} '{name}' ({remote_id}): {exc}"
        self.errors.append(entry)
        return entry

    def merge(self, other: "RunResult") -> None:
        """Fold another (per-account) result into this aggregate."""
        self.campaigns_processed += other.campaigns_processed
        self.ad_sets_processed += other.ad_sets_processed
        self.ads_processed += other.ads_processed
        self.metrics_stored += other.metrics_stored
        self.accounts_synced += other.accounts_synced
        self.accounts_skipped += other.accounts_skipped
        self.needs_reconnection = self.needs_reconnection or other.needs_reconnection
        self.errors.extend(other.errors)

    def finish(self) -> "RunResult":
        self.state = (
            RunState.COMPLETED if self.success else RunState.COMPLETED_WITH_ERRORS
        )
        return self
