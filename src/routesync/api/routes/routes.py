"""Route query routes."""
from datetime import date as date_type
from datetime import datetime
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from routesync.api.deps import as_http_error, get_query_service
from routesync.errors import StoreIOError
from routesync.models.records import ActivityType
from routesync.query.service import FilterCriteria, RouteQueryService

router = APIRouter()


class WorkoutResponse(BaseModel):
    external_id: str
    name: str
    activity_type: str
    start_date: datetime
    end_date: datetime
    distance_meters: Optional[float]
    duration_seconds: Optional[float]
    calories_kcal: Optional[float]
    is_indoor: bool


class RouteDisplayResponse(BaseModel):
    id: str
    activity_type: ActivityType
    color: str
    polyline: List[Tuple[float, float]]


class RouteSummaryResponse(BaseModel):
    id: str
    activity_type: ActivityType
    date: datetime
    formatted_date: str
    is_indoor: bool
    name: str


class RenameRequest(BaseModel):
    name: str


def _criteria(
    date: Optional[date_type] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    activity_type: Optional[List[ActivityType]] = Query(default=None),
    search: str = "",
) -> FilterCriteria:
    """Query parameters → FilterCriteria. Repeat activity_type to match several."""
    return FilterCriteria(
        date=date,
        start=start,
        end=end,
        activity_types=frozenset(activity_type) if activity_type is not None else None,
        search_text=search,
    )


def _workout_response(workout) -> WorkoutResponse:
    return WorkoutResponse(
        external_id=workout.external_id,
        name=workout.name,
        activity_type=workout.activity_type,
        start_date=workout.start_date,
        end_date=workout.end_date,
        distance_meters=workout.distance_meters,
        duration_seconds=workout.duration_seconds,
        calories_kcal=workout.calories_kcal,
        is_indoor=workout.is_indoor,
    )


@router.get("", response_model=List[WorkoutResponse])
def list_routes(
    criteria: FilterCriteria = Depends(_criteria),
    service: RouteQueryService = Depends(get_query_service),
):
    """Workouts matching the filter, newest first."""
    return [_workout_response(w) for w in service.get_routes(criteria)]


@router.get("/display", response_model=List[RouteDisplayResponse])
def route_display(
    criteria: FilterCriteria = Depends(_criteria),
    service: RouteQueryService = Depends(get_query_service),
):
    """Polylines for map rendering; workouts without GPS are omitted."""
    return [
        RouteDisplayResponse(
            id=info.id,
            activity_type=info.activity_type,
            color=info.color,
            polyline=info.polyline,
        )
        for info in service.get_display_info(criteria)
    ]


@router.get("/summary", response_model=List[RouteSummaryResponse])
def route_summary(
    criteria: FilterCriteria = Depends(_criteria),
    service: RouteQueryService = Depends(get_query_service),
):
    """Metadata-only list, newest first."""
    return [
        RouteSummaryResponse(
            id=info.id,
            activity_type=info.activity_type,
            date=info.date,
            formatted_date=info.formatted_date,
            is_indoor=info.is_indoor,
            name=info.name,
        )
        for info in service.get_summary_info(criteria)
    ]


@router.patch("/{external_id}", response_model=WorkoutResponse)
def rename_route(
    external_id: str,
    request: RenameRequest,
    service: RouteQueryService = Depends(get_query_service),
):
    """Rename a stored workout."""
    try:
        workout = service.store.rename_workout(external_id, request.name)
    except StoreIOError as exc:
        raise as_http_error(exc) from exc
    if not workout:
        raise HTTPException(status_code=404, detail="Workout not found")
    return _workout_response(workout)
