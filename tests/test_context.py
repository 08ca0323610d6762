"""Tests for stage timing."""

import pytest

from update_controller.context import collect_timings, stage_timer


def test_stage_timer_without_collector() -> None:
    """Test stages can be timed when nothing collects the timings."""
    with stage_timer("check"):
        pass


def test_collect_timings() -> None:
    """Test the duration of each stage is recorded."""
    with collect_timings() as timings:
        with stage_timer("check"):
            pass
        with stage_timer("apply"):
            pass
        with stage_timer("apply"):
            pass
    assert set(timings) == {"check", "apply"}
    assert all(elapsed >= 0 for elapsed in timings.values())

    with stage_timer("ignored"):
        pass
    assert "ignored" not in timings


def test_stage_timer_records_on_error() -> None:
    """Test a failed stage is still recorded."""
    with collect_timings() as timings:
        with pytest.raises(ValueError):
            with stage_timer("decode"):
                raise ValueError("bad descriptor")
    assert "decode" in timings
