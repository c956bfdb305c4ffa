"""Tests for the file-backed ledger stores."""

import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from funfarm.ledger.errors import StoreUnavailable, VersionConflict
from funfarm.ledger.store import AccountStore, ActivityLog, RewardActionStore
from funfarm.policy.models import ActionType, RewardAction

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _action(actor: str = "alice", action_type=ActionType.LIKE, target: str = "post-1", amount=1_000):
    return RewardAction(
        actor_id=actor,
        action_type=action_type,
        target_id=target,
        amount=amount,
        created_at=NOW,
        day="2026-03-10",
    )


def test_reward_actions_unique_per_key():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RewardActionStore(tmpdir)
        assert store.insert_if_absent(_action())
        assert not store.insert_if_absent(_action(amount=5))
        assert store.insert_if_absent(_action(target="post-2"))
        assert store.insert_if_absent(_action(actor="bob"))
        assert store.insert_if_absent(_action(action_type=ActionType.SHARE))

        assert store.exists("alice", ActionType.LIKE, "post-1")
        assert store.count_for_day("alice", ActionType.LIKE, "2026-03-10") == 2
        assert store.total_for_actor("alice") == 12_000


def test_concurrent_inserts_grant_once():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RewardActionStore(tmpdir)
        results = []

        def insert():
            results.append(store.insert_if_absent(_action()))

        threads = [threading.Thread(target=insert) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert len(store.list_for_actor("alice")) == 1


def test_sum_excludes_exempt_actions():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RewardActionStore(tmpdir)
        store.insert_if_absent(_action())
        store.insert_if_absent(_action(action_type=ActionType.WELCOME, target="", amount=50_000))
        assert store.sum_amount_for_day("alice", "2026-03-10") == 51_000
        assert store.sum_amount_for_day(
            "alice", "2026-03-10", exclude=[ActionType.WELCOME]
        ) == 1_000


def test_account_create_and_get():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AccountStore(tmpdir)
        created = store.create("alice", created_at=NOW)
        assert created.pending_reward == 0
        assert created.version == 0
        with pytest.raises(ValueError):
            store.create("alice")
        with pytest.raises(KeyError):
            store.get("nobody")
        assert store.find("nobody") is None

        loaded = store.get("alice")
        assert loaded.created_at == NOW
        assert loaded.created_at.tzinfo is not None


def test_versioned_update():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AccountStore(tmpdir)
        store.create("alice", created_at=NOW)
        updated = store.update("alice", expected_version=0, ban_reason="spam")
        assert updated.version == 1
        assert updated.ban_reason == "spam"

        with pytest.raises(VersionConflict) as exc_info:
            store.update("alice", expected_version=0, ban_reason="other")
        assert exc_info.value.actual == 1
        assert store.get("alice").ban_reason == "spam"


def test_update_rejects_unknown_fields():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AccountStore(tmpdir)
        store.create("alice")
        with pytest.raises(ValueError):
            store.update("alice", nickname="al")
        with pytest.raises(ValueError):
            store.update("alice", version=10)
        with pytest.raises(KeyError):
            store.update("nobody", banned=True)


def test_atomic_increment():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AccountStore(tmpdir)
        store.create("alice")
        assert store.atomic_increment("alice", "pending_reward", 1_000).pending_reward == 1_000
        assert store.atomic_increment("alice", "pending_reward", 2_000).pending_reward == 3_000
        with pytest.raises(ValueError):
            store.atomic_increment("alice", "pending_reward", -5_000)
        with pytest.raises(ValueError):
            store.atomic_increment("alice", "violation_level", 1)
        assert store.get("alice").version == 2


def test_corrupt_file_raises_and_is_left_alone():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "accounts.json"
        path.write_text('{"alice": {"id": "alice", "pending_reward": 12')
        store = AccountStore(tmpdir)
        with pytest.raises(StoreUnavailable):
            store.list_accounts()
        with pytest.raises(StoreUnavailable):
            store.create("bob")
        assert path.read_text() == '{"alice": {"id": "alice", "pending_reward": 12'


def test_wrong_document_shape_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        (Path(tmpdir) / "reward_actions.json").write_text('{"rows": []}')
        store = RewardActionStore(tmpdir)
        with pytest.raises(StoreUnavailable):
            store.insert_if_absent(_action())


def test_unusable_directory_raises_store_unavailable():
    with tempfile.TemporaryDirectory() as tmpdir:
        blocker = Path(tmpdir) / "blocker"
        blocker.write_text("")
        with pytest.raises(StoreUnavailable):
            AccountStore(blocker)


def test_activity_log():
    with tempfile.TemporaryDirectory() as tmpdir:
        log = ActivityLog(tmpdir)
        log.record("alice", "share", NOW)
        with pytest.raises(ValueError):
            log.record("alice", "login", NOW)

        assert log.has_activity_since("alice", NOW - timedelta(seconds=1))
        assert not log.has_activity_since("alice", NOW)
        assert not log.has_activity_since("bob", NOW - timedelta(days=1))
        assert log.list_for("alice") == [("share", NOW)]


def test_activity_prune():
    with tempfile.TemporaryDirectory() as tmpdir:
        log = ActivityLog(tmpdir)
        log.record("alice", "post", NOW - timedelta(days=40))
        log.record("bob", "like", NOW - timedelta(days=31))
        log.record("alice", "comment", NOW - timedelta(days=2))

        assert log.prune(NOW - timedelta(days=30)) == 2
        assert log.list_for("alice") == [("comment", NOW - timedelta(days=2))]
        assert log.list_for("bob") == []
        assert log.prune(NOW - timedelta(days=30)) == 0
