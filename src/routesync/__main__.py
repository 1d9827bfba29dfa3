"""
Main entrypoint.

Usage:
    python -m routesync setup           # one-time Garmin auth setup
    python -m routesync sync [--force]  # one incremental sync cycle
    python -m routesync backfill        # full historical resync
    python -m routesync run             # API + scheduler, initial load first
    python -m routesync reset           # wipe stored routes and the watermark

    uvicorn routesync.api.main:app      # API alone (syncs on request only)
"""
import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _run_setup() -> None:
    from routesync.scripts.setup import run_setup
    run_setup()


def _build_coordinator():
    from routesync.db.engine import get_engine
    from routesync.services import build_auth, build_coordinator

    if not build_auth().has_session():
        logger.error("No Garmin session found. Run `python -m routesync setup` first.")
        sys.exit(1)
    return build_coordinator(get_engine())


async def _run_sync(force: bool) -> None:
    from routesync.config import get_settings

    coordinator = _build_coordinator()
    min_interval = 0.0 if force else get_settings().sync_min_interval_seconds
    if await coordinator.sync_if_due(min_interval=min_interval):
        outcome = coordinator.last_outcome
        print(
            f"Synced {outcome.workouts_synced} workouts "
            f"({outcome.points_stored} points, {len(outcome.failures)} failed)"
        )
    else:
        print(f"Sync not due; last sync at {coordinator.last_sync_date}")


async def _run_backfill() -> None:
    coordinator = _build_coordinator()
    if not await coordinator.full_sync():
        print("Another sync is in progress.")
        return
    outcome = coordinator.last_outcome
    print(
        f"Backfilled {outcome.workouts_synced} workouts "
        f"({outcome.points_stored} points, {len(outcome.failures)} failed)"
    )


def _run_reset() -> None:
    from routesync.config import get_settings
    from routesync.db.engine import get_engine
    from routesync.db.store import RouteStore
    from routesync.sync.watermark import WatermarkStore

    confirm = input("Delete all stored routes and the sync watermark? [y/N] ")
    if confirm.strip().lower() != "y":
        print("Reset cancelled.")
        return
    RouteStore(get_engine()).clear()
    WatermarkStore(get_settings().state_dir).reset()
    print("Route store and watermark cleared.")


async def _run_service() -> None:
    import uvicorn

    from routesync.api.main import create_app
    from routesync.config import get_settings
    from routesync.errors import RouteSyncError
    from routesync.scheduler.jobs import build_scheduler

    settings = get_settings()
    coordinator = _build_coordinator()

    try:
        await coordinator.ensure_initial_data()
    except RouteSyncError as exc:
        logger.error("Initial load failed: %s (will retry on schedule)", exc)

    scheduler = build_scheduler(coordinator)
    scheduler.start()
    logger.info(
        "Scheduler started (checking every %d minutes)", settings.sync_check_minutes
    )

    app = create_app()
    app.state.coordinator = coordinator
    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.api_host, port=settings.api_port)
    )
    try:
        await server.serve()
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="routesync", description=__doc__.splitlines()[1])
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("setup", help="Log in to Garmin Connect and save tokens")
    sync = sub.add_parser("sync", help="Run one incremental sync cycle")
    sync.add_argument("--force", action="store_true", help="Ignore the sync interval")
    sub.add_parser("backfill", help="Resync all history")
    sub.add_parser("run", help="Serve the API and sync on a schedule")
    sub.add_parser("reset", help="Delete stored routes and the watermark")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = _parse_args(argv)
    if args.command == "setup":
        _run_setup()
    elif args.command == "sync":
        asyncio.run(_run_sync(args.force))
    elif args.command == "backfill":
        asyncio.run(_run_backfill())
    elif args.command == "reset":
        _run_reset()
    else:
        asyncio.run(_run_service())


if __name__ == "__main__":
    main()
