"""Pydantic models for API request/response serialization.

These models mirror the funfarm dataclasses and provide proper JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Reward models
# ---------------------------------------------------------------------------


class EvaluateRequest(BaseModel):
    """An interaction to evaluate for a reward.

    The action is timestamped by the server when it is evaluated.
    """

    account_id: str
    action_type: str
    target_id: str = ""
    target_owner_id: str = ""
    text: str = ""
    image_count: int = Field(default=0, ge=0)
    has_video: bool = False
    post_type: str = "post"
    duration_minutes: int = Field(default=0, ge=0)


class DecisionResponse(BaseModel):
    """Mirrors funfarm.policy.models.RewardDecision."""

    granted: bool
    action_type: str
    target_id: str = ""
    amount: int = 0
    pending_total: int = 0
    rejection: Optional[str] = None
    reason: str = ""


class RewardActionResponse(BaseModel):
    """Mirrors funfarm.policy.models.RewardAction."""

    id: str
    action_type: str
    target_id: str = ""
    amount: int
    day: str
    created_at: str


class DailySummaryResponse(BaseModel):
    """Mirrors funfarm.policy.models.DailySummary."""

    account_id: str
    day: str
    counts: dict[str, int] = Field(default_factory=dict)
    total: int = 0
    cap_counted: int = 0
    daily_cap: int = 0


# ---------------------------------------------------------------------------
# Account models
# ---------------------------------------------------------------------------


class CreateAccountRequest(BaseModel):
    id: str = Field(..., min_length=1)


class SettleRequest(BaseModel):
    amount: int = Field(..., gt=0)


class AccountResponse(BaseModel):
    """Mirrors funfarm.policy.models.Account."""

    id: str
    created_at: str
    pending_reward: int = 0
    confirmed_balance: int = 0
    violation_level: int = 0
    banned: bool = False
    permanent_ban: bool = False
    banned_at: Optional[str] = None
    ban_expires_at: Optional[str] = None
    ban_reason: str = ""
    is_good_heart: bool = False
    good_heart_since: Optional[str] = None


# ---------------------------------------------------------------------------
# Moderation models
# ---------------------------------------------------------------------------


class ViolationRequest(BaseModel):
    account_id: str
    reason: str = Field(..., min_length=1)
    severe: bool = False


class ViolationRecordResponse(BaseModel):
    """Mirrors funfarm.policy.models.ViolationRecord."""

    id: str
    violation_count: int
    reason: str
    created_at: str
    expires_at: Optional[str] = None
    severe: bool = False


class SweepResponse(BaseModel):
    """Mirrors funfarm.policy.models.SweepResult."""

    swept_at: str
    checked: int = 0
    promoted: list[str] = Field(default_factory=list)
    still_suspended: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    pruned: int = 0


class GoodHeartResponse(BaseModel):
    awarded: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Bonus request models
# ---------------------------------------------------------------------------


class BonusSubmitRequest(BaseModel):
    post_id: str
    user_id: str
    text: str = ""
    image_count: int = Field(default=0, ge=0)


class BonusRequestResponse(BaseModel):
    """Mirrors funfarm.bonus.store.BonusRequest."""

    id: str
    post_id: str
    user_id: str
    status: str = "pending"
    bonus_amount: int = 0
    created_at: str = ""
    reviewed_at: str = ""
    reviewed_by: str = ""


class BonusSubmitResponse(BaseModel):
    """Mirrors funfarm.bonus.workflow.BonusSubmission."""

    created: bool
    status: str
    rejection: str = ""
    request: Optional[BonusRequestResponse] = None


class ResolveBonusRequest(BaseModel):
    decision: str = Field(..., pattern="^(approved|rejected)$")
    reviewer_id: str = "admin"


# ---------------------------------------------------------------------------
# Policy models
# ---------------------------------------------------------------------------


class PolicyResponse(BaseModel):
    """Mirrors funfarm.policy.config.RewardPolicy.to_dict()."""

    version: str
    amounts: dict[str, int] = Field(default_factory=dict)
    daily_limits: dict[str, int] = Field(default_factory=dict)
    daily_reward_cap: int
    cap_exempt: list[str] = Field(default_factory=list)
    min_post_chars: int
    min_comment_chars: int
    require_post_media: bool = True
    quality_post_types: list[str] = Field(default_factory=list)
    min_livestream_minutes: int
    first_suspension_days: int
    extended_suspension_days: int
    permanent_ban_level: int
    inactive_ban_days: int
    permanent_sentinel_years: int
    new_account_grace_days: int = 0
    good_heart_days: int
    bonus_rate_percent: int
    day_offset_hours: int = 0
