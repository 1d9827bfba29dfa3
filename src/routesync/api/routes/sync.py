"""Sync trigger and status routes."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from routesync.api.deps import as_http_error, get_coordinator
from routesync.config import get_settings
from routesync.db.engine import get_session
from routesync.errors import RouteSyncError
from routesync.models.sync import SyncLog
from routesync.sync.coordinator import SyncCoordinator

router = APIRouter()


class SyncTriggerRequest(BaseModel):
    min_interval: Optional[float] = None  # None → configured default
    force: bool = False  # ignore the throttle


class SyncTriggerResponse(BaseModel):
    ran: bool
    last_sync_date: Optional[datetime]
    workouts_synced: Optional[int] = None
    workouts_failed: Optional[int] = None


class SyncStatusResponse(BaseModel):
    mode: str
    last_sync_date: Optional[datetime]
    status: str
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    workouts_synced: Optional[int]
    workouts_failed: Optional[int]
    error_message: Optional[str]


def _trigger_response(coordinator: SyncCoordinator, ran: bool) -> SyncTriggerResponse:
    outcome = coordinator.last_outcome if ran else None
    return SyncTriggerResponse(
        ran=ran,
        last_sync_date=coordinator.last_sync_date,
        workouts_synced=outcome.workouts_synced if outcome else None,
        workouts_failed=len(outcome.failures) if outcome else None,
    )


@router.post("", response_model=SyncTriggerResponse)
async def trigger_sync(
    request: Optional[SyncTriggerRequest] = None,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """
    Run an incremental sync now if one is due.

    Waits for the cycle to commit. `ran` is false when the sync was
    throttled or another cycle was already running.
    """
    request = request or SyncTriggerRequest()
    if request.force:
        min_interval = 0.0
    elif request.min_interval is not None:
        min_interval = request.min_interval
    else:
        min_interval = get_settings().sync_min_interval_seconds

    try:
        ran = await coordinator.sync_if_due(min_interval=min_interval)
    except RouteSyncError as exc:
        raise as_http_error(exc) from exc
    return _trigger_response(coordinator, ran)


@router.post("/initial", response_model=SyncTriggerResponse)
async def initial_sync(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Load all history if nothing is stored yet; no-op otherwise."""
    try:
        had_data = not coordinator.store.is_empty()
        ok = await coordinator.ensure_initial_data()
    except RouteSyncError as exc:
        raise as_http_error(exc) from exc
    return _trigger_response(coordinator, ok and not had_data)


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(
    session: Session = Depends(get_session),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Coordinator state plus the most recent sync log."""
    snapshot = coordinator.status
    log = session.exec(
        select(SyncLog).order_by(SyncLog.started_at.desc())
    ).first()
    if not log:
        return SyncStatusResponse(
            mode=snapshot.mode.value,
            last_sync_date=snapshot.last_sync_date,
            status="never_run",
            started_at=None,
            finished_at=None,
            workouts_synced=None,
            workouts_failed=None,
            error_message=None,
        )
    return SyncStatusResponse(
        mode=snapshot.mode.value,
        last_sync_date=snapshot.last_sync_date,
        status=log.status,
        started_at=log.started_at,
        finished_at=log.finished_at,
        workouts_synced=log.workouts_synced,
        workouts_failed=log.workouts_failed,
        error_message=log.error_message,
    )
