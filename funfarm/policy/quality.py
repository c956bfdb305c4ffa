"""Quality gates: which posts, comments and livestreams are rich enough to reward."""

from __future__ import annotations

from typing import Optional

from funfarm.policy.config import RewardPolicy
from funfarm.policy.models import ActionContent, ActionType


def is_quality_post(content: ActionContent, policy: RewardPolicy) -> bool:
    """Original content, longer than the minimum, with an image or video."""
    if content.post_type not in policy.quality_post_types:
        return False
    if content.char_count <= policy.min_post_chars:
        return False
    if policy.require_post_media and not content.has_media:
        return False
    return True


def is_quality_comment(content: ActionContent, policy: RewardPolicy) -> bool:
    return content.char_count > policy.min_comment_chars


def qualifies_for_bonus(content: ActionContent) -> bool:
    """Bonus eligibility: some body text plus at least one image.

    Location does not count toward eligibility.
    """
    return bool((content.text or "").strip()) and content.image_count > 0


def check_quality(
    action_type: ActionType, content: Optional[ActionContent], policy: RewardPolicy
) -> Optional[str]:
    """Return a failure reason, or None when the action passes its gate."""
    if action_type == ActionType.POST:
        if content is None:
            return "post content is required"
        if not is_quality_post(content, policy):
            return (
                f"post needs more than {policy.min_post_chars} characters "
                "and an image or video"
            )
    elif action_type == ActionType.COMMENT:
        if content is None or not is_quality_comment(content, policy):
            return f"comment needs more than {policy.min_comment_chars} characters"
    elif action_type == ActionType.LIVESTREAM:
        if content is None or content.duration_minutes < policy.min_livestream_minutes:
            return f"livestream must last at least {policy.min_livestream_minutes} minutes"
    return None


_INTERACTIONS = (ActionType.LIKE, ActionType.COMMENT, ActionType.SHARE)


def check_self_interaction(
    actor_id: str, action_type: ActionType, target_id: str, content: Optional[ActionContent]
) -> Optional[str]:
    """Return a failure reason when an account interacts with itself."""
    if action_type in _INTERACTIONS and content is not None:
        if content.target_owner_id and content.target_owner_id == actor_id:
            return f"{action_type.value}s on your own posts do not earn rewards"
    if action_type == ActionType.FRIENDSHIP and target_id == actor_id:
        return "befriending yourself does not earn rewards"
    return None
