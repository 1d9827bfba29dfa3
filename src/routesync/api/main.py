"""FastAPI application factory."""
from fastapi import FastAPI

from routesync.api.routes import routes as route_routes
from routesync.api.routes import sync as sync_routes


def create_app() -> FastAPI:
    """
    Build and return the FastAPI app.

    The sync coordinator and query service are created lazily on first
    request (see api/deps.py) and kept on app.state; `python -m routesync run`
    installs its own coordinator there so the API and the scheduler share
    one single-flight lock.
    """
    app = FastAPI(
        title="Route Sync API",
        description="Garmin GPS route sync and query backend",
        version="0.1.0",
    )
    app.state.coordinator = None
    app.state.query_service = None

    app.include_router(route_routes.router, prefix="/routes", tags=["routes"])
    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
