"""Reward policy: configuration, quality gates and the decision engine."""

from funfarm.policy.config import DEFAULT_POLICY, RewardPolicy, load_policy
from funfarm.policy.models import (
    Account,
    ActionContent,
    ActionType,
    Rejection,
    RewardAction,
    RewardDecision,
    ViolationRecord,
)

__all__ = [
    "DEFAULT_POLICY",
    "Account",
    "ActionContent",
    "ActionType",
    "Rejection",
    "RewardAction",
    "RewardDecision",
    "RewardPolicy",
    "ViolationRecord",
    "load_policy",
]
