"""Data models for the reward ledger and anti-abuse policy."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """Attach UTC to naive timestamps; convert aware ones."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class ActionType(str, Enum):
    """Kinds of interaction that can earn a reward."""

    POST = "post"
    LIKE = "like"
    COMMENT = "comment"
    SHARE = "share"
    FRIENDSHIP = "friendship"
    LIVESTREAM = "livestream"
    WELCOME = "welcome"
    WALLET_CONNECT = "wallet_connect"
    BONUS = "bonus"  # admin-approved quality bonus, never evaluated directly


class Rejection(str, Enum):
    """Why an action did not earn a reward.  Checked in declaration order."""

    BANNED = "banned"
    SUSPENDED = "suspended"
    ALREADY_REWARDED = "already_rewarded"
    DAILY_CAP_REACHED = "daily_cap_reached"
    GLOBAL_CAP_REACHED = "global_cap_reached"
    QUALITY_GATE_FAILED = "quality_gate_failed"


# Ban expiries this far past the ban start mean "permanent".
PERMANENT_THRESHOLD = timedelta(days=365 * 99)


@dataclass
class Account:
    """Reward-relevant slice of a user profile."""

    id: str
    created_at: datetime
    pending_reward: int = 0
    confirmed_balance: int = 0
    violation_level: int = 0  # 0 clean | 1 warned | 2 suspended | >=3 banned
    banned: bool = False
    permanent_ban: bool = False
    banned_at: Optional[datetime] = None  # start of the current suspension or ban
    ban_expires_at: Optional[datetime] = None
    ban_reason: str = ""
    last_violation_at: Optional[datetime] = None
    is_good_heart: bool = False
    good_heart_since: Optional[datetime] = None
    version: int = 0

    def suspension_active(self, at: datetime) -> bool:
        """True while a temporary reward suspension covers *at*."""
        if self.ban_expires_at is None or self.is_permanently_banned:
            return False
        return at < self.ban_expires_at

    @property
    def is_permanently_banned(self) -> bool:
        """Explicit flag, or the far-future expiry written by the sweeper."""
        if self.permanent_ban:
            return True
        if not self.banned:
            return False
        if self.ban_expires_at is None:
            return True
        start = self.banned_at or self.created_at
        return self.ban_expires_at - start >= PERMANENT_THRESHOLD


@dataclass
class ActionContent:
    """Content attributes the quality gates look at."""

    text: str = ""
    image_count: int = 0
    has_video: bool = False
    post_type: str = "post"
    duration_minutes: int = 0
    target_owner_id: str = ""  # author of the liked/commented/shared post

    @property
    def char_count(self) -> int:
        return len(self.text or "")

    @property
    def has_media(self) -> bool:
        return self.image_count > 0 or self.has_video


@dataclass
class RewardAction:
    """Append-only record of one rewarded interaction.

    ``actor_id`` is the account credited.  ``target_id`` identifies the
    interaction (a post id, the counterpart user for a friendship, ``""``
    for account-level bonuses).
    """

    actor_id: str
    action_type: ActionType
    target_id: str
    amount: int
    created_at: datetime
    day: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.actor_id, self.action_type.value, self.target_id)


@dataclass
class ViolationRecord:
    """One flagged abuse event."""

    user_id: str
    violation_count: int
    reason: str
    created_at: datetime
    expires_at: Optional[datetime] = None  # None = permanent; warnings expire at once
    severe: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])


@dataclass
class RewardDecision:
    """Outcome of evaluating one action."""

    granted: bool
    action_type: ActionType
    target_id: str = ""
    amount: int = 0
    pending_total: int = 0
    rejection: Optional[Rejection] = None
    reason: str = ""

    @classmethod
    def reject(
        cls, action_type: ActionType, target_id: str, rejection: Rejection, reason: str
    ) -> RewardDecision:
        return cls(
            granted=False,
            action_type=action_type,
            target_id=target_id,
            rejection=rejection,
            reason=reason,
        )


@dataclass
class SweepResult:
    """Summary of one inactivity sweep."""

    checked: int = 0
    promoted: list[str] = field(default_factory=list)
    still_suspended: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    pruned: int = 0
    swept_at: Optional[datetime] = None


@dataclass
class DailySummary:
    """Per-day reward breakdown for one account."""

    account_id: str
    day: str
    counts: dict[str, int] = field(default_factory=dict)
    total: int = 0
    cap_counted: int = 0  # portion that counts toward the global daily cap
