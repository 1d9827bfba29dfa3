"""Workout and route point tables."""
from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


class Workout(SQLModel, table=True):
    """One row per source workout. Never deleted by the sync path."""

    id: Optional[int] = Field(default=None, primary_key=True)
    external_id: str = Field(unique=True, index=True)
    name: str = ""
    activity_type: str  # ActivityType value: "walking", "running", ...
    start_date: datetime = Field(index=True)
    end_date: datetime

    distance_meters: Optional[float] = None
    duration_seconds: Optional[float] = None
    calories_kcal: Optional[float] = None
    is_indoor: bool = False

    synced_at: datetime = Field(default_factory=datetime.utcnow)

    route_points: List["RoutePoint"] = Relationship(back_populates="workout")


class RoutePoint(SQLModel, table=True):
    """
    One (possibly simplified) GPS fix belonging to a workout.
    sequence is the position within the simplified trace.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    workout_id: int = Field(foreign_key="workout.id", index=True)
    sequence: int
    latitude: float
    longitude: float
    timestamp: datetime

    workout: Optional[Workout] = Relationship(back_populates="route_points")
