from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./routes.db"
    state_dir: Path = Path.home() / ".routesync"
    sync_min_interval_seconds: float = 3600.0
    sync_check_minutes: int = 15
    sync_concurrency: Optional[int] = None  # None → cpu count, capped at 8
    sync_deadline_seconds: Optional[float] = 600.0
    simplify_tolerance_meters: float = 10.0
    activity_types: List[str] = ["walking", "running", "cycling", "hiking"]
    trace_chunk_size: int = 500
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
