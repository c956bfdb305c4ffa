"""File-based JSON storage for the reward ledger.

Provides the store interfaces the policy engine consumes, backed by simple
JSON files under ``~/.funfarm/`` (or ``$FUNFARM_HOME``):

- ``accounts/accounts.json`` -- account snapshots keyed by id
- ``rewards/reward_actions.json`` -- append-only reward actions
- ``violations/violations.json`` -- violation records
- ``activity/activity.json`` -- user activity seen by the inactivity sweeper

Every read-modify-write runs under a per-store lock, so the uniqueness of
``(actor, action, target)`` and balance increments hold for concurrent
callers within one process.  A file that does not parse raises
``StoreUnavailable`` and is left untouched for an operator to repair.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from funfarm.config import store_dir
from funfarm.ledger.errors import StoreUnavailable, VersionConflict
from funfarm.policy.models import (
    Account,
    ActionType,
    RewardAction,
    ViolationRecord,
    ensure_utc,
    utcnow,
)

logger = logging.getLogger(__name__)


def _fmt(ts: Optional[datetime]) -> Optional[str]:
    return ensure_utc(ts).isoformat() if ts is not None else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


class _JsonFileStore:
    """Shared plumbing: one JSON document per store, written atomically."""

    _name = ""
    _filename = ""
    _empty: Any = list

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        self._base = Path(base_dir) if base_dir is not None else store_dir(self._name)
        try:
            self._base.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot create store directory {self._base}: {exc}") from exc
        self._path = self._base / self._filename
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self) -> Any:
        if not self._path.exists():
            return self._empty()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.error("Corrupt store file %s: %s", self._path, exc)
            raise StoreUnavailable(f"Corrupt store file {self._path}: {exc}") from exc
        except OSError as exc:
            raise StoreUnavailable(f"Cannot read {self._path}: {exc}") from exc
        if not isinstance(data, self._empty):
            raise StoreUnavailable(
                f"Unexpected {type(data).__name__} in {self._path}, expected {self._empty.__name__}"
            )
        return data

    def _write_json(self, data: Any) -> None:
        tmp = self._path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot write {self._path}: {exc}") from exc


# ----------------------------------------------------------------------
# Accounts
# ----------------------------------------------------------------------

_ACCOUNT_TIMESTAMPS = (
    "created_at",
    "banned_at",
    "ban_expires_at",
    "last_violation_at",
    "good_heart_since",
)
_ACCOUNT_FIELDS = {f.name for f in fields(Account)}
_INCREMENTABLE = ("pending_reward", "confirmed_balance")


def _account_to_dict(account: Account) -> dict:
    d = asdict(account)
    for key in _ACCOUNT_TIMESTAMPS:
        d[key] = _fmt(d[key])
    return d


def _account_from_dict(d: dict) -> Account:
    data = {k: v for k, v in d.items() if k in _ACCOUNT_FIELDS}
    for key in _ACCOUNT_TIMESTAMPS:
        data[key] = _parse(data.get(key))
    if data.get("created_at") is None:
        data["created_at"] = utcnow()
    return Account(**data)


class AccountStore(_JsonFileStore):
    """Account snapshots with versioned, conditional updates."""

    _name = "accounts"
    _filename = "accounts.json"
    _empty = dict

    def create(self, account_id: str, created_at: Optional[datetime] = None) -> Account:
        """Create a clean account.  Raises ``ValueError`` if it already exists."""
        with self._lock:
            data = self._read_json()
            if account_id in data:
                raise ValueError(f"Account '{account_id}' already exists")
            account = Account(id=account_id, created_at=ensure_utc(created_at or utcnow()))
            data[account_id] = _account_to_dict(account)
            self._write_json(data)
            return account

    def find(self, account_id: str) -> Optional[Account]:
        entry = self._read_json().get(account_id)
        return _account_from_dict(entry) if entry else None

    def get(self, account_id: str) -> Account:
        """Return the account.  Raises ``KeyError`` if it does not exist."""
        account = self.find(account_id)
        if account is None:
            raise KeyError(account_id)
        return account

    def list_accounts(self) -> list[Account]:
        return [_account_from_dict(d) for d in self._read_json().values()]

    def update(
        self, account_id: str, expected_version: Optional[int] = None, **changes: Any
    ) -> Account:
        """Apply *changes* and bump the version.

        With *expected_version*, the write only happens if the stored row is
        still at that version; otherwise ``VersionConflict`` is raised.
        """
        blocked = (set(changes) - _ACCOUNT_FIELDS) | ({"id", "version"} & set(changes))
        if blocked:
            raise ValueError(f"Cannot update account fields: {sorted(blocked)}")
        with self._lock:
            data = self._read_json()
            if account_id not in data:
                raise KeyError(account_id)
            account = _account_from_dict(data[account_id])
            if expected_version is not None and account.version != expected_version:
                raise VersionConflict(account_id, expected_version, account.version)
            for key, value in changes.items():
                setattr(account, key, value)
            account.version += 1
            data[account_id] = _account_to_dict(account)
            self._write_json(data)
            return account

    def atomic_increment(self, account_id: str, field_name: str, delta: int) -> Account:
        """Add *delta* to a balance field in a single locked write."""
        if field_name not in _INCREMENTABLE:
            raise ValueError(f"Field '{field_name}' cannot be incremented")
        with self._lock:
            data = self._read_json()
            if account_id not in data:
                raise KeyError(account_id)
            entry = data[account_id]
            new_value = int(entry.get(field_name, 0)) + int(delta)
            if new_value < 0:
                raise ValueError(f"{field_name} would become negative for '{account_id}'")
            entry[field_name] = new_value
            entry["version"] = int(entry.get("version", 0)) + 1
            self._write_json(data)
            return _account_from_dict(entry)


# ----------------------------------------------------------------------
# Reward actions
# ----------------------------------------------------------------------


def _action_to_dict(action: RewardAction) -> dict:
    d = asdict(action)
    d["action_type"] = action.action_type.value
    d["created_at"] = _fmt(action.created_at)
    return d


def _action_from_dict(d: dict) -> RewardAction:
    return RewardAction(
        id=d["id"],
        actor_id=d["actor_id"],
        action_type=ActionType(d["action_type"]),
        target_id=d.get("target_id", ""),
        amount=int(d.get("amount", 0)),
        created_at=_parse(d["created_at"]),
        day=d["day"],
    )


class RewardActionStore(_JsonFileStore):
    """Append-only reward actions, unique per ``(actor, action, target)``.

    Lookups scan the whole file, so cost grows with the ledger.  Deployments
    past a few hundred thousand actions need an indexed backend behind the
    same interface.
    """

    _name = "rewards"
    _filename = "reward_actions.json"

    def _load(self) -> list[RewardAction]:
        return [_action_from_dict(d) for d in self._read_json()]

    def exists(self, actor_id: str, action_type: ActionType, target_id: str) -> bool:
        key = (actor_id, ActionType(action_type).value, target_id)
        return any(a.key == key for a in self._load())

    def insert_if_absent(self, action: RewardAction) -> bool:
        """Append *action* unless its key is already present.  Returns inserted."""
        with self._lock:
            rows = self._read_json()
            key = list(action.key)
            for row in rows:
                if [row["actor_id"], row["action_type"], row.get("target_id", "")] == key:
                    return False
            rows.append(_action_to_dict(action))
            self._write_json(rows)
            return True

    def count_for_day(self, actor_id: str, action_type: ActionType, day: str) -> int:
        action_type = ActionType(action_type)
        return sum(
            1
            for a in self._load()
            if a.actor_id == actor_id and a.action_type == action_type and a.day == day
        )

    def sum_amount_for_day(
        self, actor_id: str, day: str, exclude: Iterable[ActionType] = ()
    ) -> int:
        skip = {ActionType(a) for a in exclude}
        return sum(
            a.amount
            for a in self._load()
            if a.actor_id == actor_id and a.day == day and a.action_type not in skip
        )

    def list_for_actor(self, actor_id: str, day: Optional[str] = None) -> list[RewardAction]:
        """Actions credited to *actor_id*, oldest first."""
        result = [
            a for a in self._load() if a.actor_id == actor_id and (day is None or a.day == day)
        ]
        result.sort(key=lambda a: a.created_at)
        return result

    def total_for_actor(self, actor_id: str) -> int:
        return sum(a.amount for a in self._load() if a.actor_id == actor_id)


# ----------------------------------------------------------------------
# Violations
# ----------------------------------------------------------------------


def _violation_to_dict(record: ViolationRecord) -> dict:
    d = asdict(record)
    d["created_at"] = _fmt(record.created_at)
    d["expires_at"] = _fmt(record.expires_at)
    return d


def _violation_from_dict(d: dict) -> ViolationRecord:
    return ViolationRecord(
        id=d["id"],
        user_id=d["user_id"],
        violation_count=int(d.get("violation_count", 0)),
        reason=d.get("reason", ""),
        created_at=_parse(d["created_at"]),
        expires_at=_parse(d.get("expires_at")),
        severe=bool(d.get("severe", False)),
    )


class ViolationStore(_JsonFileStore):
    """Violation records, newest last."""

    _name = "violations"
    _filename = "violations.json"

    def append(self, record: ViolationRecord) -> ViolationRecord:
        with self._lock:
            rows = self._read_json()
            rows.append(_violation_to_dict(record))
            self._write_json(rows)
        return record

    def list_for(self, user_id: str) -> list[ViolationRecord]:
        result = [_violation_from_dict(d) for d in self._read_json() if d.get("user_id") == user_id]
        result.sort(key=lambda r: r.created_at)
        return result

    def latest_active(
        self, user_id: str, now: Optional[datetime] = None
    ) -> Optional[ViolationRecord]:
        """Newest record that is permanent or has not yet expired."""
        now = ensure_utc(now or utcnow())
        for record in reversed(self.list_for(user_id)):
            if record.expires_at is None or record.expires_at > now:
                return record
        return None


# ----------------------------------------------------------------------
# Activity
# ----------------------------------------------------------------------

ACTIVITY_KINDS = ("post", "comment", "like", "share", "profile_update")


class ActivityLog(_JsonFileStore):
    """Timestamps of user activity, consulted by the inactivity sweeper.

    Every lookup scans the whole file.  The sweeper calls ``prune`` after each
    run so the log only holds activity that can still decide a promotion.
    """

    _name = "activity"
    _filename = "activity.json"

    def record(self, account_id: str, kind: str, at: Optional[datetime] = None) -> None:
        if kind not in ACTIVITY_KINDS:
            raise ValueError(f"Unknown activity kind '{kind}'")
        with self._lock:
            rows = self._read_json()
            rows.append({"account_id": account_id, "kind": kind, "at": _fmt(at or utcnow())})
            self._write_json(rows)

    def has_activity_since(self, account_id: str, since: datetime) -> bool:
        """True if any activity was recorded strictly after *since*."""
        since = ensure_utc(since)
        return any(
            row.get("account_id") == account_id and _parse(row.get("at")) > since
            for row in self._read_json()
            if row.get("at")
        )

    def list_for(self, account_id: str) -> list[tuple[str, datetime]]:
        return [
            (row["kind"], _parse(row["at"]))
            for row in self._read_json()
            if row.get("account_id") == account_id
        ]

    def prune(self, before: datetime) -> int:
        """Drop activity recorded before *before*.  Returns the number removed."""
        before = ensure_utc(before)
        with self._lock:
            rows = self._read_json()
            kept = [row for row in rows if row.get("at") and _parse(row["at"]) >= before]
            removed = len(rows) - len(kept)
            if removed:
                self._write_json(kept)
            return removed
