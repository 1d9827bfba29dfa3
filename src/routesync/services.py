"""Wiring: builds the sync and query services from settings."""
from typing import Optional

from routesync.config import Settings, get_settings
from routesync.db.store import RouteStore
from routesync.garmin.auth import SESSION_DIR_NAME, GarminAuth
from routesync.garmin.client import GarminActivitySource
from routesync.query.service import RouteQueryService
from routesync.sync.coordinator import SyncCoordinator, default_concurrency
from routesync.sync.ingestion import ActivitySource, IngestionService
from routesync.sync.watermark import WatermarkStore


def build_auth(settings: Optional[Settings] = None) -> GarminAuth:
    settings = settings or get_settings()
    return GarminAuth(settings.state_dir / SESSION_DIR_NAME)


def build_coordinator(
    engine,
    settings: Optional[Settings] = None,
    source: Optional[ActivitySource] = None,
) -> SyncCoordinator:
    """
    Args:
        engine: SQLAlchemy engine for the route store.
        settings: Defaults to get_settings().
        source: Activity source; defaults to Garmin Connect with saved tokens.
    """
    settings = settings or get_settings()
    if source is None:
        source = GarminActivitySource(
            build_auth(settings), chunk_size=settings.trace_chunk_size
        )
    concurrency = settings.sync_concurrency or default_concurrency()

    return SyncCoordinator(
        ingestion=IngestionService(
            source,
            activity_types=settings.activity_types,
            concurrency=concurrency,
        ),
        store=RouteStore(engine),
        watermark=WatermarkStore(settings.state_dir),
        concurrency=concurrency,
        tolerance_meters=settings.simplify_tolerance_meters,
        deadline_seconds=settings.sync_deadline_seconds,
    )


def build_query_service(engine) -> RouteQueryService:
    return RouteQueryService(RouteStore(engine))
