"""Versioned reward policy -- every amount, cap, threshold and window in one place.

Policy changes (new caps, different quality thresholds) are data changes:
ship a new YAML file and load it with :func:`load_policy`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import yaml

from funfarm.policy.models import ActionType


def _default_amounts() -> dict[ActionType, int]:
    return {
        ActionType.POST: 10_000,
        ActionType.LIKE: 1_000,
        ActionType.COMMENT: 2_000,
        ActionType.SHARE: 10_000,
        ActionType.FRIENDSHIP: 10_000,
        ActionType.LIVESTREAM: 20_000,
        ActionType.WELCOME: 50_000,
        ActionType.WALLET_CONNECT: 50_000,
    }


def _default_daily_limits() -> dict[ActionType, int]:
    # Likes and comments are separate pools.
    return {
        ActionType.POST: 10,
        ActionType.LIKE: 50,
        ActionType.COMMENT: 50,
        ActionType.SHARE: 5,
        ActionType.FRIENDSHIP: 10,
        ActionType.LIVESTREAM: 5,
    }


def _default_cap_exempt() -> frozenset[ActionType]:
    return frozenset({ActionType.WELCOME, ActionType.WALLET_CONNECT, ActionType.BONUS})


@dataclass(frozen=True)
class RewardPolicy:
    """All tunable constants of the reward and anti-abuse policy."""

    version: str = "3.1"
    amounts: dict[ActionType, int] = field(default_factory=_default_amounts)
    daily_limits: dict[ActionType, int] = field(default_factory=_default_daily_limits)
    daily_reward_cap: int = 500_000
    cap_exempt: frozenset[ActionType] = field(default_factory=_default_cap_exempt)

    # Quality gates (lengths are exclusive minimums)
    min_post_chars: int = 100
    min_comment_chars: int = 20
    require_post_media: bool = True
    quality_post_types: tuple[str, ...] = ("post", "product")
    min_livestream_minutes: int = 15

    # Violations and bans
    first_suspension_days: int = 7
    extended_suspension_days: int = 30
    permanent_ban_level: int = 3
    inactive_ban_days: int = 7
    permanent_sentinel_years: int = 100
    new_account_grace_days: int = 0

    good_heart_days: int = 30
    bonus_rate_percent: int = 50

    # 0 counts days in UTC; +7 counts them in Vietnam time.
    day_offset_hours: int = 0

    def amount_for(self, action_type: ActionType) -> int:
        return self.amounts.get(action_type, 0)

    def daily_limit_for(self, action_type: ActionType) -> int | None:
        """Per-action daily count cap, or None when the action is uncapped."""
        return self.daily_limits.get(action_type)

    def is_cap_exempt(self, action_type: ActionType) -> bool:
        return action_type in self.cap_exempt

    @property
    def bonus_amount(self) -> int:
        return self.amount_for(ActionType.POST) * self.bonus_rate_percent // 100

    def permanent_expiry(self, start: datetime) -> datetime:
        """The far-future expiry used to mark a ban as permanent."""
        try:
            return start.replace(year=start.year + self.permanent_sentinel_years)
        except ValueError:
            # Feb 29 in a non-leap target year
            return start.replace(year=start.year + self.permanent_sentinel_years, day=28)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "amounts": {k.value: v for k, v in self.amounts.items()},
            "daily_limits": {k.value: v for k, v in self.daily_limits.items()},
            "daily_reward_cap": self.daily_reward_cap,
            "cap_exempt": sorted(a.value for a in self.cap_exempt),
            "min_post_chars": self.min_post_chars,
            "min_comment_chars": self.min_comment_chars,
            "require_post_media": self.require_post_media,
            "quality_post_types": list(self.quality_post_types),
            "min_livestream_minutes": self.min_livestream_minutes,
            "first_suspension_days": self.first_suspension_days,
            "extended_suspension_days": self.extended_suspension_days,
            "permanent_ban_level": self.permanent_ban_level,
            "inactive_ban_days": self.inactive_ban_days,
            "permanent_sentinel_years": self.permanent_sentinel_years,
            "new_account_grace_days": self.new_account_grace_days,
            "good_heart_days": self.good_heart_days,
            "bonus_rate_percent": self.bonus_rate_percent,
            "day_offset_hours": self.day_offset_hours,
        }


DEFAULT_POLICY = RewardPolicy()

_SCALAR_FIELDS = (
    "version",
    "daily_reward_cap",
    "min_post_chars",
    "min_comment_chars",
    "require_post_media",
    "min_livestream_minutes",
    "first_suspension_days",
    "extended_suspension_days",
    "permanent_ban_level",
    "inactive_ban_days",
    "permanent_sentinel_years",
    "new_account_grace_days",
    "good_heart_days",
    "bonus_rate_percent",
    "day_offset_hours",
)


def _action_map(raw: dict, label: str) -> dict[ActionType, int]:
    result: dict[ActionType, int] = {}
    for name, value in raw.items():
        try:
            action = ActionType(name)
        except ValueError:
            raise ValueError(f"Unknown action type in {label}: {name!r}") from None
        if int(value) < 0:
            raise ValueError(f"{label}.{name} must be non-negative")
        result[action] = int(value)
    return result


def policy_from_dict(data: dict, base: RewardPolicy = DEFAULT_POLICY) -> RewardPolicy:
    """Overlay *data* onto *base*.  Keys missing from *data* keep base values."""
    changes: dict = {}
    for key in _SCALAR_FIELDS:
        if key in data:
            changes[key] = str(data[key]) if key == "version" else data[key]

    if "amounts" in data:
        amounts = dict(base.amounts)
        amounts.update(_action_map(data["amounts"] or {}, "amounts"))
        changes["amounts"] = amounts
    if "daily_limits" in data:
        limits = dict(base.daily_limits)
        limits.update(_action_map(data["daily_limits"] or {}, "daily_limits"))
        changes["daily_limits"] = limits
    if "cap_exempt" in data:
        try:
            changes["cap_exempt"] = frozenset(ActionType(a) for a in data["cap_exempt"] or [])
        except ValueError as exc:
            raise ValueError(f"Unknown action type in cap_exempt: {exc}") from None
    if "quality_post_types" in data:
        changes["quality_post_types"] = tuple(data["quality_post_types"] or ())

    return replace(base, **changes)


def load_policy(path: str | Path) -> RewardPolicy:
    """Load a reward policy from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Policy file {path} must contain a mapping")
    return policy_from_dict(data)


def day_key(ts: datetime, offset_hours: int = 0) -> str:
    """Return the reward day (``YYYY-MM-DD``) that *ts* falls into.

    Naive timestamps are taken as UTC.
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    local = ts.astimezone(timezone.utc) + timedelta(hours=offset_hours)
    return local.strftime("%Y-%m-%d")
