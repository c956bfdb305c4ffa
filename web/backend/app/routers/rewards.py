"""Rewards router -- reward evaluation and the active policy."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from funfarm.policy.models import ActionContent, ActionType, RewardDecision
from web.backend.app.middleware.auth import get_engine, require_service
from web.backend.app.models.api import DecisionResponse, EvaluateRequest, PolicyResponse
from web.backend.app.routers.accounts import account_or_404

router = APIRouter(prefix="/api", tags=["rewards"])

_EVALUABLE = {a.value for a in ActionType if a != ActionType.BONUS}


def _decision_response(d: RewardDecision) -> DecisionResponse:
    return DecisionResponse(
        granted=d.granted,
        action_type=d.action_type.value,
        target_id=d.target_id,
        amount=d.amount,
        pending_total=d.pending_total,
        rejection=d.rejection.value if d.rejection else None,
        reason=d.reason,
    )


@router.post(
    "/rewards/evaluate",
    response_model=DecisionResponse,
    summary="Evaluate an action for a reward",
    dependencies=[Depends(require_service)],
)
def evaluate(body: EvaluateRequest):
    """Decide whether the action earns CAMLY and credit it if so.

    A rejected action is a normal 200 response with ``granted: false``.
    """
    if body.action_type not in _EVALUABLE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown action type '{body.action_type}'",
        )
    account_or_404(body.account_id)
    content = ActionContent(
        text=body.text,
        image_count=body.image_count,
        has_video=body.has_video,
        post_type=body.post_type,
        duration_minutes=body.duration_minutes,
        target_owner_id=body.target_owner_id,
    )
    decision = get_engine().evaluate_action(
        body.account_id,
        body.action_type,
        body.target_id or None,
        content=content,
    )
    return _decision_response(decision)


@router.get(
    "/policy",
    response_model=PolicyResponse,
    summary="Get the active reward policy",
)
def get_policy():
    """Return every amount, limit and threshold currently in force."""
    return PolicyResponse(**get_engine().policy.to_dict())
