"""AdSync - Sync Routes."""

from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from adsync.models.remote_models import DateRange
from adsync.core.logging import get_logger

logger = get_logger("api.sync")

router = APIRouter(prefix="/sync", tags=["Sync"])


def _date_range(since: Optional[date], until: Optional[date]) -> Optional[DateRange]:
    if since is None and until is None:
        return None
    if since is None or until is None:
        raise HTTPException(status_code=400, detail="Provide both since and until")
    try:
        return DateRange(since=since, until=until)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/run")
async def run_sync_all(
    request: Request,
    since: Optional[date] = Query(None),
    until: Optional[date] = Query(None),
):
    """Sync every connected ad account (cron trigger)."""
    orchestrator = request.app.state.orchestrator
    result = await orchestrator.run_sync_all_accounts(_date_range(since, until))
    return {"status": result.state.value, "success": result.success, "result": result}


@router.post("/run/{user_id}")
async def run_sync_for_user(
    user_id: str,
    request: Request,
    since: Optional[date] = Query(None),
    until: Optional[date] = Query(None),
):
    """Sync the ad accounts of one user.

    A result with `success: false` may still have stored most data; the
    counters tell how much.
    """
    orchestrator = request.app.state.orchestrator
    result = await orchestrator.run_sync(user_id, _date_range(since, until))
    return {"status": result.state.value, "success": result.success, "result": result}


@router.get("/status/{user_id}")
async def connection_status(user_id: str, request: Request):
    """Meta connection status of a user: connected, account, token expiry."""
    store = request.app.state.credentials
    stored = store.list_credentials(user_id)
    if not stored:
        return {"connected": False, "ad_account_id": None, "token_expires_at": None}

    now = datetime.now(timezone.utc)
    valid = [c for c in stored if not c.is_expired(now)]
    current = valid[0] if valid else stored[0]
    return {
        "connected": bool(valid),
        "needs_reconnection": not valid,
        "ad_account_id": current.ad_account_id,
        "token_expires_at": current.expires_at.isoformat(),
    }
