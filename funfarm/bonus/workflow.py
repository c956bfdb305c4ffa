"""Quality-post bonus requests: ``none -> pending -> approved | rejected``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from funfarm.bonus.store import BonusRequest, BonusRequestStore, BonusStatus
from funfarm.notifications import events
from funfarm.policy.engine import RewardEngine
from funfarm.policy.models import ActionContent, ensure_utc, utcnow
from funfarm.policy.quality import qualifies_for_bonus

logger = logging.getLogger(__name__)

ALREADY_REQUESTED = "already_requested"
NOT_ELIGIBLE = "not_eligible"


@dataclass
class BonusSubmission:
    """Result of submitting a bonus request."""

    created: bool
    status: str
    request: Optional[BonusRequest] = None
    rejection: str = ""


class BonusWorkflow:
    def __init__(self, engine: RewardEngine, store: BonusRequestStore) -> None:
        self.engine = engine
        self.store = store

    def submit_bonus_request(
        self, post_id: str, user_id: str, content: ActionContent
    ) -> BonusSubmission:
        """Ask for the bonus on a post with body text and at least one image."""
        if not qualifies_for_bonus(content):
            return BonusSubmission(created=False, status=NOT_ELIGIBLE, rejection=NOT_ELIGIBLE)

        request, created = self.store.create_if_absent(post_id, user_id)
        if not created:
            return BonusSubmission(
                created=False,
                status=request.status.value,
                request=request,
                rejection=ALREADY_REQUESTED,
            )
        logger.info("Bonus requested by %s for post %s", user_id, post_id)
        return BonusSubmission(created=True, status=request.status.value, request=request)

    def resolve_bonus_request(
        self,
        request_id: str,
        decision: BonusStatus | str,
        reviewer_id: str,
        decided_at: Optional[datetime] = None,
    ) -> Optional[BonusRequest]:
        """Admin decision on a pending request.  Decided requests are returned as-is."""
        decision = BonusStatus(decision)
        if decision == BonusStatus.PENDING:
            raise ValueError("Decision must be 'approved' or 'rejected'")
        request = self.store.get_request(request_id)
        if request is None or request.is_terminal:
            return request

        at = ensure_utc(decided_at or utcnow())
        amount = 0
        if decision == BonusStatus.APPROVED:
            # Crediting is idempotent per post, so a retry after a failed
            # decide() cannot pay twice.
            credit = self.engine.grant_bonus(request.user_id, request.post_id, occurred_at=at)
            amount = self.engine.policy.bonus_amount
            if not credit.granted:
                logger.warning("Bonus for post %s was already credited", request.post_id)

        resolved = self.store.decide(
            request_id, decision, reviewer_id, bonus_amount=amount, decided_at=at
        )
        if resolved is None or resolved.status != decision:
            return resolved

        if decision == BonusStatus.APPROVED:
            self.engine.notify(
                resolved.user_id,
                events.BONUS_APPROVED,
                {"post_id": resolved.post_id, "amount": amount},
            )
        else:
            self.engine.notify(
                resolved.user_id,
                events.BONUS_REJECTED,
                {
                    "post_id": resolved.post_id,
                    "message": "Thanks for sharing! Tell more of your story next time to earn the bonus.",
                },
            )
        logger.info("Bonus request %s %s by %s", request_id, decision.value, reviewer_id)
        return resolved
