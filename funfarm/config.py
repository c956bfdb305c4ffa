"""Runtime settings and wiring.

Settings come from the environment:

- ``FUNFARM_HOME`` -- root directory for the file-backed stores
  (default ``~/.funfarm``)
- ``FUNFARM_POLICY`` -- path to a reward policy YAML file
- ``FUNFARM_ADMIN_TOKEN`` -- shared secret for admin API routes
- ``FUNFARM_SERVICE_TOKEN`` -- shared secret the app backend uses to report
  user actions to the API
- ``FUNFARM_WEBHOOK_URL`` / ``FUNFARM_WEBHOOK_SECRET`` -- optional
  endpoint that receives every notification event
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from funfarm.bonus.workflow import BonusWorkflow
    from funfarm.policy.config import RewardPolicy
    from funfarm.policy.engine import RewardEngine


@dataclass
class Settings:
    home: Path
    policy_path: str = ""
    admin_token: str = ""
    service_token: str = ""
    webhook_url: str = ""
    webhook_secret: str = ""


def load_settings(home: Optional[str | Path] = None) -> Settings:
    """Read settings from the environment.  *home* overrides ``FUNFARM_HOME``."""
    if home is None:
        home = os.environ.get("FUNFARM_HOME") or Path.home() / ".funfarm"
    return Settings(
        home=Path(home),
        policy_path=os.environ.get("FUNFARM_POLICY", ""),
        admin_token=os.environ.get("FUNFARM_ADMIN_TOKEN", ""),
        service_token=os.environ.get("FUNFARM_SERVICE_TOKEN", ""),
        webhook_url=os.environ.get("FUNFARM_WEBHOOK_URL", ""),
        webhook_secret=os.environ.get("FUNFARM_WEBHOOK_SECRET", ""),
    )


def store_dir(name: str) -> Path:
    """Default directory for the store called *name*."""
    return load_settings().home / name


def resolve_policy(settings: Settings) -> RewardPolicy:
    from funfarm.policy.config import DEFAULT_POLICY, load_policy

    if settings.policy_path:
        return load_policy(settings.policy_path)
    return DEFAULT_POLICY


def build_engine(
    settings: Optional[Settings] = None, policy: Optional[RewardPolicy] = None
) -> RewardEngine:
    """Wire stores, event bus and (optionally) a webhook notifier into an engine."""
    from funfarm.ledger.store import AccountStore, ActivityLog, RewardActionStore, ViolationStore
    from funfarm.notifications.events import EventBus
    from funfarm.notifications.webhooks import WebhookNotifier
    from funfarm.policy.engine import RewardEngine

    settings = settings or load_settings()
    home = settings.home
    bus = EventBus()
    if settings.webhook_url:
        bus.subscribe_all(WebhookNotifier(settings.webhook_url, secret=settings.webhook_secret))

    return RewardEngine(
        accounts=AccountStore(home / "accounts"),
        rewards=RewardActionStore(home / "rewards"),
        violations=ViolationStore(home / "violations"),
        activity=ActivityLog(home / "activity"),
        notifier=bus,
        policy=policy or resolve_policy(settings),
    )


def build_bonus_workflow(engine: RewardEngine, settings: Optional[Settings] = None) -> BonusWorkflow:
    """Bonus request workflow sharing *engine*'s ledger and notifier."""
    from funfarm.bonus.store import BonusRequestStore
    from funfarm.bonus.workflow import BonusWorkflow

    settings = settings or load_settings()
    return BonusWorkflow(engine, BonusRequestStore(settings.home / "bonus"))
