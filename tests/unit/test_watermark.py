"""Tests for the file-backed sync watermark."""
import json
from datetime import datetime, timedelta

import pytest

from routesync.sync.watermark import STATE_FILE_NAME, WatermarkStore

T0 = datetime(2025, 1, 15, 7, 30)


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"


@pytest.fixture
def watermark(state_dir):
    return WatermarkStore(state_dir)


class TestWatermarkStore:
    def test_none_before_first_sync(self, watermark):
        assert watermark.load() is None

    def test_advance_persists(self, watermark, state_dir):
        watermark.advance(T0)
        assert watermark.load() == T0
        assert WatermarkStore(state_dir).load() == T0

    def test_file_format(self, watermark, state_dir):
        watermark.advance(T0)
        raw = json.loads((state_dir / STATE_FILE_NAME).read_text())
        assert raw == {"last_sync": "2025-01-15T07:30:00"}

    def test_never_moves_backwards(self, watermark):
        watermark.advance(T0)
        assert watermark.advance(T0 - timedelta(hours=1)) == T0
        assert watermark.load() == T0

    def test_moves_forward(self, watermark):
        watermark.advance(T0)
        later = T0 + timedelta(hours=2)
        assert watermark.advance(later) == later
        assert watermark.load() == later

    def test_reset_forgets(self, watermark):
        watermark.advance(T0)
        watermark.reset()
        assert watermark.load() is None

    def test_reset_is_safe_when_absent(self, watermark):
        watermark.reset()  # should not raise

    def test_unreadable_file_treated_as_never_synced(self, watermark, state_dir):
        state_dir.mkdir(parents=True)
        (state_dir / STATE_FILE_NAME).write_text("{not json")
        assert watermark.load() is None

    def test_no_temp_file_left_behind(self, watermark, state_dir):
        watermark.advance(T0)
        assert [p.name for p in state_dir.iterdir()] == [STATE_FILE_NAME]

    def test_file_permissions_owner_only(self, watermark, state_dir):
        watermark.advance(T0)
        mode = oct((state_dir / STATE_FILE_NAME).stat().st_mode)[-3:]
        assert mode == "600", f"Expected 600, got {mode}"
