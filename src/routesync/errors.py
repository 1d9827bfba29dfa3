"""
Error taxonomy for the route sync pipeline.

  SourceUnavailable     activity source disabled/unreachable; fatal to the call
  NotAuthorized         permission denied; caller must re-authorize
  MalformedSample       unexpected record shape; isolated to that item
  StoreIOError          write/commit failure; fails the whole sync cycle
  PartialFetchFailure   one workout's trace fetch failed; workout skipped
  SyncDeadlineExceeded  a sync cycle ran past its deadline

An empty trace is not an error: it is returned as an empty list.
"""
from typing import Optional


class RouteSyncError(Exception):
    """Base class for all route sync errors."""


class SourceUnavailable(RouteSyncError):
    """The activity source is disabled or cannot be reached."""


class NotAuthorized(RouteSyncError):
    """Access to the activity source was denied or has lapsed."""


class MalformedSample(RouteSyncError):
    """A record from the activity source did not have the expected shape."""


class StoreIOError(RouteSyncError):
    """A write or commit against the route store failed."""


class PartialFetchFailure(RouteSyncError):
    """Fetching one workout's trace failed. The rest of the batch continues."""

    def __init__(self, external_id: str, cause: Optional[BaseException] = None):
        self.external_id = external_id
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Trace fetch failed for workout {external_id}{detail}")


class SyncDeadlineExceeded(RouteSyncError):
    """A sync cycle did not finish before its deadline."""
