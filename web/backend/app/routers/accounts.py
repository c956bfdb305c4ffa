"""Accounts router -- account lookup, ledger history and bookkeeping."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from funfarm.policy.models import Account, RewardAction
from web.backend.app.middleware.auth import get_engine, require_admin, require_service
from web.backend.app.models.api import (
    AccountResponse,
    CreateAccountRequest,
    DailySummaryResponse,
    RewardActionResponse,
    SettleRequest,
)

router = APIRouter(prefix="/api", tags=["accounts"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def account_response(a: Account) -> AccountResponse:
    """Convert an Account to an AccountResponse."""
    return AccountResponse(
        id=a.id,
        created_at=a.created_at.isoformat(),
        pending_reward=a.pending_reward,
        confirmed_balance=a.confirmed_balance,
        violation_level=a.violation_level,
        banned=a.banned,
        permanent_ban=a.is_permanently_banned,
        banned_at=_iso(a.banned_at),
        ban_expires_at=_iso(a.ban_expires_at),
        ban_reason=a.ban_reason,
        is_good_heart=a.is_good_heart,
        good_heart_since=_iso(a.good_heart_since),
    )


def _reward_response(r: RewardAction) -> RewardActionResponse:
    return RewardActionResponse(
        id=r.id,
        action_type=r.action_type.value,
        target_id=r.target_id,
        amount=r.amount,
        day=r.day,
        created_at=r.created_at.isoformat(),
    )


def account_or_404(account_id: str) -> Account:
    account = get_engine().accounts.find(account_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Account '{account_id}' not found",
        )
    return account


# ---------------------------------------------------------------------------
# Account endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/accounts",
    response_model=AccountResponse,
    summary="Create an account",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_service)],
)
def create_account(body: CreateAccountRequest):
    """Create a clean account with zero balances."""
    engine = get_engine()
    try:
        account = engine.accounts.create(body.id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return account_response(account)


@router.get(
    "/accounts/{account_id}",
    response_model=AccountResponse,
    summary="Get an account",
)
def get_account(account_id: str):
    """Return balances, violation level and ban state."""
    return account_response(account_or_404(account_id))


@router.get(
    "/accounts/{account_id}/rewards",
    response_model=list[RewardActionResponse],
    summary="List granted rewards",
)
def list_rewards(account_id: str, day: Optional[str] = None):
    """Return the account's reward actions, optionally for one day."""
    account_or_404(account_id)
    actions = get_engine().rewards.list_for_actor(account_id, day=day)
    return [_reward_response(r) for r in actions]


@router.get(
    "/accounts/{account_id}/summary",
    response_model=DailySummaryResponse,
    summary="Per-action reward counts for a day",
)
def daily_summary(account_id: str, day: Optional[str] = None):
    """Return today's (or *day*'s) reward breakdown."""
    engine = get_engine()
    account_or_404(account_id)
    summary = engine.daily_summary(account_id, day)
    return DailySummaryResponse(
        account_id=summary.account_id,
        day=summary.day,
        counts=summary.counts,
        total=summary.total,
        cap_counted=summary.cap_counted,
        daily_cap=engine.policy.daily_reward_cap,
    )


@router.post(
    "/accounts/{account_id}/reconcile",
    response_model=AccountResponse,
    summary="Recompute the pending reward",
    dependencies=[Depends(require_service)],
)
def reconcile(account_id: str):
    """Rebuild the pending reward from the reward action history."""
    account_or_404(account_id)
    return account_response(get_engine().reconcile_pending(account_id))


@router.post(
    "/accounts/{account_id}/settle",
    response_model=AccountResponse,
    summary="Move paid-out rewards to the confirmed balance",
    dependencies=[Depends(require_admin)],
)
def settle(account_id: str, body: SettleRequest):
    """Record that *amount* of the pending reward has been paid out."""
    account_or_404(account_id)
    try:
        account = get_engine().settle(account_id, body.amount)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return account_response(account)
