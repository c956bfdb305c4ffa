"""Moderation router -- violations, inactivity sweep, Good Heart and pardons.

Everything that changes ban state is admin-only.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from funfarm.policy.models import ViolationRecord
from web.backend.app.middleware.auth import get_engine, require_admin
from web.backend.app.models.api import (
    AccountResponse,
    GoodHeartResponse,
    SweepResponse,
    ViolationRecordResponse,
    ViolationRequest,
)
from web.backend.app.routers.accounts import account_or_404, account_response

router = APIRouter(prefix="/api", tags=["moderation"])


def _violation_response(v: ViolationRecord) -> ViolationRecordResponse:
    return ViolationRecordResponse(
        id=v.id,
        violation_count=v.violation_count,
        reason=v.reason,
        created_at=v.created_at.isoformat(),
        expires_at=v.expires_at.isoformat() if v.expires_at else None,
        severe=v.severe,
    )


@router.post(
    "/violations",
    response_model=AccountResponse,
    summary="Record a violation",
    dependencies=[Depends(require_admin)],
)
def record_violation(body: ViolationRequest):
    """Register one incident and return the escalated account."""
    account_or_404(body.account_id)
    account = get_engine().record_violation(
        body.account_id, body.reason, severe=body.severe
    )
    return account_response(account)


@router.get(
    "/accounts/{account_id}/violations",
    response_model=list[ViolationRecordResponse],
    summary="List violation records",
)
def list_violations(account_id: str):
    """Return the account's violation history, oldest first."""
    account_or_404(account_id)
    return [_violation_response(v) for v in get_engine().violations.list_for(account_id)]


@router.post(
    "/moderation/sweep",
    response_model=SweepResponse,
    summary="Promote inactive suspensions to permanent bans",
    dependencies=[Depends(require_admin)],
)
def sweep():
    """Run the inactivity sweep now."""
    result = get_engine().sweep_inactive_bans()
    return SweepResponse(
        swept_at=result.swept_at.isoformat(),
        checked=result.checked,
        promoted=result.promoted,
        still_suspended=result.still_suspended,
        failed=result.failed,
        pruned=result.pruned,
    )


@router.post(
    "/moderation/good-heart",
    response_model=GoodHeartResponse,
    summary="Grant Good Heart badges",
    dependencies=[Depends(require_admin)],
)
def good_heart():
    """Grant the badge to every account clean for long enough."""
    return GoodHeartResponse(awarded=get_engine().award_good_hearts())


@router.post(
    "/moderation/pardon/{account_id}",
    response_model=AccountResponse,
    summary="Clear an account's violations and bans",
    dependencies=[Depends(require_admin)],
)
def pardon(account_id: str):
    account_or_404(account_id)
    return account_response(get_engine().pardon(account_id))
