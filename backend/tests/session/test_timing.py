"""
Tests for session timing resolution and the timer manager.
"""
from datetime import datetime, timedelta, timezone

import pytest

from exam_engine.core.datetime_utils import elapsed_whole_seconds, parse_timestamp
from exam_engine.core.session.timing import (
    SessionTimerManager,
    TimingAction,
    remaining_seconds,
    resolve_timing,
)
from exam_engine.store import paths

NOW = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class TestRemainingSeconds:
    """Tests for remaining_seconds."""

    def test_full_duration_at_start(self):
        assert remaining_seconds(NOW, 30, NOW) == 1800

    def test_floors_partial_seconds(self):
        assert remaining_seconds(NOW, 1, NOW + timedelta(seconds=10.9)) == 50

    def test_never_negative(self):
        assert remaining_seconds(NOW, 1, NOW + timedelta(minutes=5)) == 0


class TestResolveTiming:
    """Tests for resolve_timing."""

    def test_fresh_start(self):
        decision = resolve_timing(NOW, None, 30, force_restart=False)

        assert decision.action == TimingAction.FRESH
        assert decision.started_at == NOW
        assert decision.remaining_seconds == 1800
        assert decision.is_resume is False

    def test_resume_keeps_original_start(self):
        started = NOW - timedelta(minutes=12)

        decision = resolve_timing(NOW, started, 30, force_restart=False)

        assert decision.action == TimingAction.RESUME
        assert decision.started_at == started
        assert decision.remaining_seconds == 18 * 60
        assert decision.is_resume is True

    def test_forgiveness_boundary_restarts(self):
        """Exactly 30 seconds left is treated as expired."""
        started = NOW - timedelta(minutes=10) + timedelta(seconds=30)

        decision = resolve_timing(NOW, started, 10, force_restart=False)

        assert decision.action == TimingAction.EXPIRED_RESTART
        assert decision.started_at == NOW
        assert decision.remaining_seconds == 600

    def test_just_above_forgiveness_resumes(self):
        started = NOW - timedelta(minutes=10) + timedelta(seconds=31)

        decision = resolve_timing(NOW, started, 10, force_restart=False)

        assert decision.action == TimingAction.RESUME
        assert decision.remaining_seconds == 31

    def test_long_expired_restarts(self):
        decision = resolve_timing(NOW, NOW - timedelta(days=2), 10, force_restart=False)

        assert decision.action == TimingAction.EXPIRED_RESTART

    def test_force_restart_ignores_persisted_start(self):
        decision = resolve_timing(
            NOW, NOW - timedelta(minutes=1), 10, force_restart=True
        )

        assert decision.action == TimingAction.FORCED_RESTART
        assert decision.started_at == NOW
        assert decision.remaining_seconds == 600

    def test_custom_forgiveness(self):
        started = NOW - timedelta(minutes=9)

        decision = resolve_timing(
            NOW, started, 10, force_restart=False, forgiveness_seconds=90
        )

        assert decision.action == TimingAction.EXPIRED_RESTART


class TestSessionTimerManager:
    """Tests for SessionTimerManager against the store."""

    @pytest.fixture
    def manager(self, store, clock):
        return SessionTimerManager(store, 30, clock)

    async def test_fresh_start_persists_timer(self, manager, store, clock):
        decision = await manager.resolve("u1", "t1", 30)

        assert decision.action == TimingAction.FRESH
        stored = await store.get(paths.timer_state("u1", "t1"))
        assert parse_timestamp(stored["started_at"]) == clock.now

    async def test_resume_does_not_rewrite_timer(self, manager, store, clock):
        first = await manager.resolve("u1", "t1", 30)
        clock.advance(600)

        second = await manager.resolve("u1", "t1", 30)

        assert second.action == TimingAction.RESUME
        assert second.started_at == first.started_at
        assert second.remaining_seconds == 1200
        stored = await store.get(paths.timer_state("u1", "t1"))
        assert parse_timestamp(stored["started_at"]) == first.started_at

    async def test_expired_restart_clears_session_data(self, manager, store, clock):
        await manager.resolve("u1", "t1", 10)
        await store.set(paths.session_progress("u1", "t1"), {"answers": {"q1": 0}})
        await store.set(paths.adaptive_state("u1", "t1"), {"user_id": "u1"})
        clock.advance(10 * 60)

        decision = await manager.resolve("u1", "t1", 10)

        assert decision.action == TimingAction.EXPIRED_RESTART
        assert decision.started_at == clock.now
        assert await store.get(paths.session_progress("u1", "t1")) is None
        assert await store.get(paths.adaptive_state("u1", "t1")) is None

    async def test_forced_restart_clears_prior_response(self, manager, store):
        await manager.resolve("u1", "t1", 10)
        await store.set(paths.response("t1", "u1"), {"score": 3})
        await store.set(paths.session_progress("u1", "t1"), {"answers": {"q1": 0}})

        decision = await manager.resolve("u1", "t1", 10, force_restart=True)

        assert decision.action == TimingAction.FORCED_RESTART
        assert await store.get(paths.response("t1", "u1")) is None
        assert await store.get(paths.session_progress("u1", "t1")) is None
        assert await store.get(paths.timer_state("u1", "t1")) is not None

    async def test_unreadable_timer_treated_as_fresh(self, manager, store):
        await store.set(paths.timer_state("u1", "t1"), {"started_at": "yesterday"})

        decision = await manager.resolve("u1", "t1", 10)

        assert decision.action == TimingAction.FRESH

    async def test_other_users_untouched(self, manager, store, clock):
        await manager.resolve("u2", "t1", 10)
        await store.set(paths.session_progress("u2", "t1"), {"answers": {"q1": 1}})

        await manager.resolve("u1", "t1", 10, force_restart=True)

        assert await store.get(paths.session_progress("u2", "t1")) == {
            "answers": {"q1": 1}
        }


class TestDatetimeHelpers:
    """Tests for the timestamp helpers the timer relies on."""

    def test_parse_z_suffix(self):
        assert parse_timestamp("2025-03-01T09:00:00Z") == NOW

    def test_parse_naive_as_utc(self):
        assert parse_timestamp("2025-03-01T09:00:00") == NOW

    @pytest.mark.parametrize("value", [None, ""])
    def test_parse_empty(self, value):
        assert parse_timestamp(value) is None

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_timestamp("not a timestamp")

    def test_elapsed_floors(self):
        assert elapsed_whole_seconds(NOW, NOW + timedelta(seconds=2.999)) == 2

    def test_elapsed_negative(self):
        assert elapsed_whole_seconds(NOW, NOW - timedelta(seconds=0.5)) == -1
