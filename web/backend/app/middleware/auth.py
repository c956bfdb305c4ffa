"""Auth middleware -- FastAPI dependencies for admin routes and shared services.

Admin routes require ``X-Admin-Token: <token>`` matching ``FUNFARM_ADMIN_TOKEN``.
Routes that report user actions (reward evaluation, account creation,
bonus submission) require ``X-Service-Token`` matching ``FUNFARM_SERVICE_TOKEN``
or the admin token.  Routes whose token is not configured are closed.
"""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from funfarm.bonus.workflow import BonusWorkflow
from funfarm.config import Settings, build_bonus_workflow, build_engine, load_settings
from funfarm.policy.engine import RewardEngine

# Shared instances
_settings: Optional[Settings] = None
_engine: Optional[RewardEngine] = None
_workflow: Optional[BonusWorkflow] = None


def get_settings() -> Settings:
    """Return the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_engine() -> RewardEngine:
    """Return the singleton RewardEngine instance."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings())
    return _engine


def get_bonus_workflow() -> BonusWorkflow:
    """Return the singleton BonusWorkflow instance."""
    global _workflow
    if _workflow is None:
        _workflow = build_bonus_workflow(get_engine(), get_settings())
    return _workflow


def configure(settings: Optional[Settings] = None, engine: Optional[RewardEngine] = None) -> None:
    """Replace the shared instances; the next request rebuilds what is missing."""
    global _settings, _engine, _workflow
    _settings = settings
    _engine = engine
    _workflow = None


def _token_matches(given: Optional[str], expected: str) -> bool:
    return bool(expected) and bool(given) and hmac.compare_digest(given, expected)


async def require_admin(
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
) -> str:
    """FastAPI dependency guarding moderation and review endpoints.

    Raises ``403 Forbidden`` when admin access is not configured and
    ``401 Unauthorized`` when the token is missing or wrong.
    """
    expected = get_settings().admin_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is not configured",
        )
    if not _token_matches(x_admin_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
        )
    return "admin"


async def require_service(
    x_service_token: Optional[str] = Header(None, alias="X-Service-Token"),
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
) -> str:
    """FastAPI dependency for routes that report user actions.

    Checks (in order):
    1. ``X-Service-Token`` -- the app backend
    2. ``X-Admin-Token`` -- an administrator

    Raises ``403 Forbidden`` when neither token is configured and
    ``401 Unauthorized`` when no valid credentials are provided.
    """
    settings = get_settings()
    if not settings.service_token and not settings.admin_token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Service access is not configured",
        )
    if _token_matches(x_service_token, settings.service_token):
        return "service"
    if _token_matches(x_admin_token, settings.admin_token):
        return "admin"
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid service token",
    )
