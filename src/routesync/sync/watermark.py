"""
Sync watermark persistence.

The watermark is the start time of the last sync cycle whose writes were
durably committed. It lives outside the route store, as one key in a small
JSON file under the state directory:

    {"last_sync": "2025-01-15T07:30:00"}

Writes go to a temp file that is then renamed over the original, so a
crash mid-write never leaves a truncated file. The watermark only moves
forward.
"""
import json
import logging
import os
import stat
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "sync_state.json"
_KEY = "last_sync"


class WatermarkStore:
    """File-backed single-scalar watermark."""

    def __init__(self, state_dir: Path):
        self._state_dir = Path(state_dir)
        self._state_file = self._state_dir / STATE_FILE_NAME

    @property
    def path(self) -> Path:
        return self._state_file

    def load(self) -> Optional[datetime]:
        """Return the stored watermark, or None if never synced."""
        if not self._state_file.exists():
            return None
        try:
            raw = json.loads(self._state_file.read_text())
            value = raw.get(_KEY)
            return datetime.fromisoformat(value) if value else None
        except (ValueError, AttributeError, TypeError) as exc:
            logger.warning(
                "Ignoring unreadable sync state at %s: %s", self._state_file, exc
            )
            return None

    def advance(self, ts: datetime) -> datetime:
        """
        Move the watermark forward to `ts`.

        A `ts` at or before the stored value leaves it unchanged.

        Returns:
            The watermark after the call.
        """
        current = self.load()
        if current is not None and ts <= current:
            return current
        self._write({_KEY: ts.isoformat()})
        return ts

    def reset(self) -> None:
        """Forget the watermark (does not raise if already absent)."""
        if self._state_file.exists():
            self._state_file.unlink()

    def _write(self, data: dict) -> None:
        self._state_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self._state_dir, stat.S_IRWXU)  # 0700

        tmp = self._state_file.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2))
        os.chmod(tmp, stat.S_IRUSR | stat.S_IWUSR)  # 0600
        os.replace(tmp, self._state_file)
