"""Bonus router -- quality-post bonus requests and their review."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from funfarm.bonus.store import BonusRequest, BonusStatus
from funfarm.policy.models import ActionContent
from web.backend.app.middleware.auth import get_bonus_workflow, require_admin, require_service
from web.backend.app.models.api import (
    BonusRequestResponse,
    BonusSubmitRequest,
    BonusSubmitResponse,
    ResolveBonusRequest,
)

router = APIRouter(prefix="/api", tags=["bonus"])


def _request_response(r: BonusRequest) -> BonusRequestResponse:
    """Convert a BonusRequest to a BonusRequestResponse."""
    return BonusRequestResponse(
        id=r.id,
        post_id=r.post_id,
        user_id=r.user_id,
        status=r.status.value,
        bonus_amount=r.bonus_amount,
        created_at=r.created_at,
        reviewed_at=r.reviewed_at,
        reviewed_by=r.reviewed_by,
    )


@router.post(
    "/bonus-requests",
    response_model=BonusSubmitResponse,
    summary="Request the quality-post bonus",
    dependencies=[Depends(require_service)],
)
def submit(body: BonusSubmitRequest):
    """Submit a bonus request for a post with text and at least one image.

    A repeated request returns the existing one with ``created: false``.
    """
    result = get_bonus_workflow().submit_bonus_request(
        body.post_id,
        body.user_id,
        ActionContent(text=body.text, image_count=body.image_count),
    )
    return BonusSubmitResponse(
        created=result.created,
        status=result.status,
        rejection=result.rejection,
        request=_request_response(result.request) if result.request else None,
    )


@router.get(
    "/bonus-requests",
    response_model=list[BonusRequestResponse],
    summary="List bonus requests",
    dependencies=[Depends(require_admin)],
)
def list_requests(status_filter: Optional[str] = Query(None, alias="status")):
    """Return bonus requests, optionally filtered by status."""
    if status_filter and status_filter not in {s.value for s in BonusStatus}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown status '{status_filter}'",
        )
    store = get_bonus_workflow().store
    return [_request_response(r) for r in store.list_requests(status=status_filter)]


@router.post(
    "/bonus-requests/{request_id}/resolve",
    response_model=BonusRequestResponse,
    summary="Approve or reject a bonus request",
    dependencies=[Depends(require_admin)],
)
def resolve(request_id: str, body: ResolveBonusRequest):
    """Decide a pending request.  Decided requests are returned unchanged."""
    try:
        request = get_bonus_workflow().resolve_bonus_request(
            request_id, body.decision, body.reviewer_id
        )
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="The requesting account no longer exists",
        )
    if request is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Bonus request '{request_id}' not found",
        )
    return _request_response(request)
