"""Shared FastAPI dependencies and error mapping."""
from fastapi import HTTPException, Request

from routesync.db.engine import get_engine
from routesync.errors import NotAuthorized, SourceUnavailable, StoreIOError
from routesync.query.service import RouteQueryService
from routesync.services import build_coordinator, build_query_service
from routesync.sync.coordinator import SyncCoordinator


def get_coordinator(request: Request) -> SyncCoordinator:
    """The app's single SyncCoordinator, built on first use."""
    state = request.app.state
    if getattr(state, "coordinator", None) is None:
        state.coordinator = build_coordinator(get_engine())
    return state.coordinator


def get_query_service(request: Request) -> RouteQueryService:
    state = request.app.state
    if getattr(state, "query_service", None) is None:
        state.query_service = build_query_service(get_engine())
    return state.query_service


def as_http_error(exc: Exception) -> HTTPException:
    """Map a route sync error to the HTTP status a client should see."""
    if isinstance(exc, NotAuthorized):
        return HTTPException(status_code=401, detail=str(exc) or "Not authorized")
    if isinstance(exc, SourceUnavailable):
        return HTTPException(status_code=503, detail=str(exc) or "Activity source unavailable")
    if isinstance(exc, StoreIOError):
        return HTTPException(status_code=500, detail=str(exc) or "Route store error")
    return HTTPException(status_code=500, detail=str(exc) or exc.__class__.__name__)
