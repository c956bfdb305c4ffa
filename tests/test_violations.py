"""Tests for violation escalation."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from funfarm.ledger.errors import VersionConflict
from funfarm.ledger.store import AccountStore, ActivityLog, RewardActionStore, ViolationStore
from funfarm.notifications.events import EventBus, EventRecorder
from funfarm.policy.engine import RewardEngine

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _engine(tmpdir: str, accounts=None) -> tuple[RewardEngine, EventRecorder]:
    base = Path(tmpdir)
    bus = EventBus()
    recorder = EventRecorder()
    bus.subscribe_all(recorder)
    engine = RewardEngine(
        accounts=accounts or AccountStore(base / "accounts"),
        rewards=RewardActionStore(base / "rewards"),
        violations=ViolationStore(base / "violations"),
        activity=ActivityLog(base / "activity"),
        notifier=bus,
    )
    engine.accounts.create("bob", created_at=NOW - timedelta(days=90))
    return engine, recorder


def test_three_strikes():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, recorder = _engine(tmpdir)

        warned = engine.record_violation("bob", "duplicate posts", occurred_at=NOW)
        assert warned.violation_level == 1
        assert not warned.banned
        assert warned.ban_expires_at is None

        t2 = NOW + timedelta(hours=1)
        suspended = engine.record_violation("bob", "duplicate posts", occurred_at=t2)
        assert suspended.violation_level == 2
        assert not suspended.banned
        assert suspended.ban_expires_at == t2 + timedelta(days=7)
        assert suspended.suspension_active(t2 + timedelta(days=6))

        banned = engine.record_violation("bob", "spam ring", occurred_at=NOW + timedelta(hours=2))
        assert banned.violation_level == 3
        assert banned.banned
        assert banned.is_permanently_banned
        assert banned.ban_expires_at is None
        assert not banned.is_good_heart

        assert [e.type for e in recorder.for_account("bob")] == [
            "violation.recorded",
            "rewards.suspended",
            "account.banned",
        ]


def test_lapsed_suspension_extends_instead_of_banning():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, _ = _engine(tmpdir)
        engine.record_violation("bob", "a", occurred_at=NOW)
        engine.record_violation("bob", "b", occurred_at=NOW)

        t3 = NOW + timedelta(days=10)
        extended = engine.record_violation("bob", "c", occurred_at=t3)
        assert extended.violation_level == 2
        assert not extended.banned
        assert extended.ban_expires_at == t3 + timedelta(days=30)

        t4 = t3 + timedelta(days=1)
        banned = engine.record_violation("bob", "d", occurred_at=t4)
        assert banned.violation_level == 3
        assert banned.is_permanently_banned


def test_severe_violation_bans_immediately():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, recorder = _engine(tmpdir)
        account = engine.record_violation("bob", "fake accounts", occurred_at=NOW, severe=True)
        assert account.violation_level == 3
        assert account.permanent_ban
        assert account.ban_reason == "fake accounts"
        assert recorder.for_account("bob")[-1].payload["permanent"] is True


def test_violation_clears_good_heart():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, _ = _engine(tmpdir)
        engine.accounts.update("bob", is_good_heart=True, good_heart_since=NOW - timedelta(days=5))
        account = engine.record_violation("bob", "spam", occurred_at=NOW)
        assert not account.is_good_heart
        assert account.good_heart_since is None
        assert account.last_violation_at == NOW


def test_violation_records():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, _ = _engine(tmpdir)
        engine.record_violation("bob", "warning", occurred_at=NOW)
        # Warnings expire immediately
        assert engine.violations.latest_active("bob", NOW + timedelta(seconds=1)) is None

        engine.record_violation("bob", "suspension", occurred_at=NOW)
        active = engine.violations.latest_active("bob", NOW + timedelta(days=1))
        assert active.violation_count == 2
        assert active.expires_at == NOW + timedelta(days=7)

        records = engine.violations.list_for("bob")
        assert [r.violation_count for r in records] == [1, 2]


def test_violation_after_permanent_ban_stays_banned():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, _ = _engine(tmpdir)
        engine.record_violation("bob", "bot", occurred_at=NOW, severe=True)
        account = engine.record_violation("bob", "again", occurred_at=NOW + timedelta(days=1))
        assert account.violation_level == 4
        assert account.is_permanently_banned
        assert engine.violations.list_for("bob")[-1].expires_at is None


def test_version_conflicts_are_retried_then_raised():
    class _AlwaysStale(AccountStore):
        def update(self, account_id, expected_version=None, **changes):
            if expected_version is not None:
                raise VersionConflict(account_id, expected_version, expected_version + 1)
            return super().update(account_id, **changes)

    with tempfile.TemporaryDirectory() as tmpdir:
        engine, _ = _engine(tmpdir, accounts=_AlwaysStale(Path(tmpdir) / "accounts"))
        with pytest.raises(VersionConflict):
            engine.record_violation("bob", "spam", occurred_at=NOW)
        assert engine.violations.list_for("bob") == []
        assert engine.accounts.get("bob").violation_level == 0


def test_pardon_resets_ban_state():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine, _ = _engine(tmpdir)
        engine.record_violation("bob", "bot", occurred_at=NOW, severe=True)
        account = engine.pardon("bob")
        assert account.violation_level == 0
        assert not account.banned
        assert not account.is_permanently_banned
        assert engine.evaluate_action("bob", "like", "post-1", occurred_at=NOW).granted
        # History is kept
        assert len(engine.violations.list_for("bob")) == 1
