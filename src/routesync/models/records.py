"""
In-memory records passed between the activity source, the simplifier and
the store. Plain dataclasses with no SQLModel, no DB dependencies.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ActivityType(str, Enum):
    WALKING = "walking"
    RUNNING = "running"
    CYCLING = "cycling"
    HIKING = "hiking"
    OTHER = "other"


@dataclass(frozen=True)
class TracePoint:
    """One GPS fix. Timestamps are naive UTC."""

    latitude: float
    longitude: float
    timestamp: datetime


@dataclass(frozen=True)
class TraceChunk:
    """
    One batch of a streamed trace. The stream ends with a chunk whose
    done flag is set; consumers accumulate until then.
    """

    points: List[TracePoint] = field(default_factory=list)
    done: bool = False


@dataclass
class WorkoutRecord:
    """Canonical workout metadata, keyed by the source-assigned external_id."""

    external_id: str
    activity_type: ActivityType
    start_date: datetime
    end_date: datetime
    name: str = ""
    distance_meters: Optional[float] = None
    duration_seconds: Optional[float] = None
    calories_kcal: Optional[float] = None
    is_indoor: bool = False

    def metadata(self) -> Dict[str, Any]:
        """Column values for a Workout row (everything except the key)."""
        return {
            "name": self.name,
            "activity_type": self.activity_type.value,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "distance_meters": self.distance_meters,
            "duration_seconds": self.duration_seconds,
            "calories_kcal": self.calories_kcal,
            "is_indoor": self.is_indoor,
        }
