"""Reward policy engine: reward eligibility, violation escalation, ban sweeping.

Every decision is made against a fresh account snapshot and the reward
action history.  Concurrency safety comes from the stores: reward actions
are unique per ``(actor, action, target)`` at insert time and balances move
by atomic increments, so the existence check below only short-circuits.

Violation ladder (``permanent_ban_level`` = 3 by default)::

    level 1  warning, rewards continue
    level 2  rewards suspended for ``first_suspension_days``
    level 3  permanent ban, if the violation lands inside an active
             suspension window or is flagged severe; otherwise the
             account stays at level 2 under ``extended_suspension_days``

A suspension older than ``inactive_ban_days`` with no activity since it
started is promoted to a permanent ban by :meth:`RewardEngine.sweep_inactive_bans`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from funfarm.ledger.errors import StoreUnavailable, VersionConflict
from funfarm.ledger.store import (
    ACTIVITY_KINDS,
    AccountStore,
    ActivityLog,
    RewardActionStore,
    ViolationStore,
)
from funfarm.notifications import events
from funfarm.policy.config import DEFAULT_POLICY, RewardPolicy, day_key
from funfarm.policy.models import (
    Account,
    ActionContent,
    ActionType,
    DailySummary,
    Rejection,
    RewardAction,
    RewardDecision,
    SweepResult,
    ViolationRecord,
    ensure_utc,
    utcnow,
)
from funfarm.policy.quality import check_quality, check_self_interaction

logger = logging.getLogger(__name__)

AccountRef = Union[Account, str]

_UPDATE_ATTEMPTS = 3


class RewardEngine:
    """Decides rewards and applies the anti-abuse state machine."""

    def __init__(
        self,
        accounts: AccountStore,
        rewards: RewardActionStore,
        violations: ViolationStore,
        activity: Optional[ActivityLog] = None,
        notifier: Optional[Any] = None,
        policy: RewardPolicy = DEFAULT_POLICY,
    ) -> None:
        self.accounts = accounts
        self.rewards = rewards
        self.violations = violations
        self.activity = activity
        self.notifier = notifier
        self.policy = policy

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self, account: AccountRef) -> Account:
        account_id = account.id if isinstance(account, Account) else account
        return self.accounts.get(account_id)

    def notify(self, account_id: str, event_type: str, payload: dict[str, Any]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.emit(account_id, event_type, payload)
        except Exception:
            logger.exception("Notification %s for %s failed", event_type, account_id)

    def _day(self, at: datetime) -> str:
        return day_key(at, self.policy.day_offset_hours)

    def _spent_today(self, account_id: str, day: str) -> int:
        return self.rewards.sum_amount_for_day(account_id, day, exclude=self.policy.cap_exempt)

    # ------------------------------------------------------------------
    # Reward evaluation
    # ------------------------------------------------------------------

    def _rejection(
        self,
        account: Account,
        action_type: ActionType,
        target_id: str,
        at: datetime,
        day: str,
        content: Optional[ActionContent],
    ) -> Optional[RewardDecision]:
        """First failing rule as a rejected decision, or None if eligible."""
        policy = self.policy

        def reject(rejection: Rejection, reason: str) -> RewardDecision:
            return RewardDecision.reject(action_type, target_id, rejection, reason)

        if account.banned or account.is_permanently_banned:
            return reject(Rejection.BANNED, "account is banned from rewards")

        if account.violation_level >= 2 and account.suspension_active(at):
            return reject(
                Rejection.SUSPENDED,
                f"rewards suspended until {account.ban_expires_at.isoformat()}",
            )

        if self.rewards.exists(account.id, action_type, target_id):
            return reject(Rejection.ALREADY_REWARDED, "this interaction was already rewarded")

        limit = policy.daily_limit_for(action_type)
        if limit is not None and self.rewards.count_for_day(account.id, action_type, day) >= limit:
            return reject(
                Rejection.DAILY_CAP_REACHED,
                f"daily limit of {limit} {action_type.value} rewards reached",
            )

        if not policy.is_cap_exempt(action_type):
            if self._spent_today(account.id, day) >= policy.daily_reward_cap:
                return reject(
                    Rejection.GLOBAL_CAP_REACHED,
                    f"daily reward cap of {policy.daily_reward_cap} reached",
                )

        failure = check_self_interaction(account.id, action_type, target_id, content)
        failure = failure or check_quality(action_type, content, policy)
        if failure:
            return reject(Rejection.QUALITY_GATE_FAILED, failure)

        return None

    def evaluate_action(
        self,
        account: AccountRef,
        action_type: ActionType | str,
        target_id: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
        content: Optional[ActionContent] = None,
    ) -> RewardDecision:
        """Decide whether an action earns a reward and credit it if so.

        Rejections are returned, not raised.  ``StoreUnavailable`` means no
        decision was made; retrying the same call is safe.
        """
        action_type = ActionType(action_type)
        if action_type == ActionType.BONUS:
            raise ValueError("Bonus credits are granted through the bonus workflow")
        snapshot = self._load(account)
        at = ensure_utc(occurred_at or utcnow())
        target = target_id or ""
        day = self._day(at)

        # The underlying action happens whether or not it earns anything.
        if self.activity is not None and action_type.value in ACTIVITY_KINDS:
            self.activity.record(snapshot.id, action_type.value, at)

        rejected = self._rejection(snapshot, action_type, target, at, day, content)
        if rejected is not None:
            logger.debug(
                "No reward for %s %s/%s: %s",
                snapshot.id, action_type.value, target, rejected.rejection.value,
            )
            return rejected

        amount = self.policy.amount_for(action_type)
        if not self.policy.is_cap_exempt(action_type):
            remaining = self.policy.daily_reward_cap - self._spent_today(snapshot.id, day)
            amount = min(amount, remaining)

        return self._credit(snapshot.id, action_type, target, amount, at, day)

    def _credit(
        self,
        account_id: str,
        action_type: ActionType,
        target_id: str,
        amount: int,
        at: datetime,
        day: str,
    ) -> RewardDecision:
        record = RewardAction(
            actor_id=account_id,
            action_type=action_type,
            target_id=target_id,
            amount=amount,
            created_at=at,
            day=day,
        )
        if not self.rewards.insert_if_absent(record):
            # Lost the race against a concurrent grant of the same interaction.
            return RewardDecision.reject(
                action_type, target_id, Rejection.ALREADY_REWARDED,
                "this interaction was already rewarded",
            )

        updated = self.accounts.atomic_increment(account_id, "pending_reward", amount)
        logger.info(
            "Rewarded %s %d for %s/%s (pending %d)",
            account_id, amount, action_type.value, target_id, updated.pending_reward,
        )
        self.notify(
            account_id,
            events.REWARD_GRANTED,
            {
                "action_type": action_type.value,
                "target_id": target_id,
                "amount": amount,
                "pending_total": updated.pending_reward,
            },
        )
        return RewardDecision(
            granted=True,
            action_type=action_type,
            target_id=target_id,
            amount=amount,
            pending_total=updated.pending_reward,
        )

    def grant_bonus(
        self, account: AccountRef, post_id: str, occurred_at: Optional[datetime] = None
    ) -> RewardDecision:
        """Credit the quality-post bonus for *post_id* once.  Exempt from caps."""
        snapshot = self._load(account)
        at = ensure_utc(occurred_at or utcnow())
        return self._credit(
            snapshot.id, ActionType.BONUS, post_id, self.policy.bonus_amount, at, self._day(at)
        )

    # ------------------------------------------------------------------
    # Violations
    # ------------------------------------------------------------------

    def _escalate(
        self, account: Account, reason: str, at: datetime, severe: bool
    ) -> tuple[dict[str, Any], ViolationRecord, str]:
        """Compute account changes, the violation record and the event to emit."""
        policy = self.policy
        ban_level = policy.permanent_ban_level
        level = account.violation_level + 1
        changes: dict[str, Any] = {
            "last_violation_at": at,
            "is_good_heart": False,
            "good_heart_since": None,
        }
        expires_at: Optional[datetime] = at
        event = events.VIOLATION_RECORDED

        if account.is_permanently_banned:
            level = max(level, ban_level)
            expires_at = None
        elif severe or (level >= ban_level and account.suspension_active(at)):
            level = max(level, ban_level)
            changes.update(
                banned=True,
                permanent_ban=True,
                banned_at=at,
                ban_expires_at=None,
                ban_reason=reason,
            )
            expires_at = None
            event = events.ACCOUNT_BANNED
        elif level >= ban_level:
            # Suspension already lapsed: suspend again for longer, same level.
            level = ban_level - 1
            expires_at = at + timedelta(days=policy.extended_suspension_days)
            changes.update(banned_at=at, ban_expires_at=expires_at, ban_reason=reason)
            event = events.REWARDS_SUSPENDED
        elif level == ban_level - 1:
            expires_at = at + timedelta(days=policy.first_suspension_days)
            changes.update(banned_at=at, ban_expires_at=expires_at, ban_reason=reason)
            event = events.REWARDS_SUSPENDED

        changes["violation_level"] = level
        record = ViolationRecord(
            user_id=account.id,
            violation_count=level,
            reason=reason,
            created_at=at,
            expires_at=expires_at,
            severe=severe,
        )
        return changes, record, event

    def record_violation(
        self,
        account: AccountRef,
        reason: str,
        occurred_at: Optional[datetime] = None,
        severe: bool = False,
    ) -> Account:
        """Register one violation and escalate the account's state.

        Each call is a distinct incident; callers must not report the same
        incident twice.
        """
        at = ensure_utc(occurred_at or utcnow())
        account_id = account.id if isinstance(account, Account) else account
        last_conflict: Optional[VersionConflict] = None
        for _ in range(_UPDATE_ATTEMPTS):
            current = self.accounts.get(account_id)
            changes, record, event = self._escalate(current, reason, at, severe)
            try:
                updated = self.accounts.update(
                    account_id, expected_version=current.version, **changes
                )
            except VersionConflict as exc:
                last_conflict = exc
                continue
            self.violations.append(record)
            logger.info(
                "Violation for %s: level %d -> %d (%s)",
                account_id, current.violation_level, updated.violation_level, reason,
            )
            self.notify(
                account_id,
                event,
                {
                    "violation_level": updated.violation_level,
                    "reason": reason,
                    "expires_at": record.expires_at.isoformat() if record.expires_at else None,
                    "permanent": updated.is_permanently_banned,
                },
            )
            return updated
        raise last_conflict

    def pardon(self, account: AccountRef) -> Account:
        """Administrative reset: clear violations, suspension and ban."""
        snapshot = self._load(account)
        updated = self.accounts.update(
            snapshot.id,
            violation_level=0,
            banned=False,
            permanent_ban=False,
            banned_at=None,
            ban_expires_at=None,
            ban_reason="",
        )
        logger.info("Pardoned %s", snapshot.id)
        return updated

    # ------------------------------------------------------------------
    # Inactivity sweep
    # ------------------------------------------------------------------

    def _sweepable(self, account: Account, now: datetime) -> bool:
        policy = self.policy
        if account.banned_at is None or not account.suspension_active(now):
            return False
        if account.banned_at > now - timedelta(days=policy.inactive_ban_days):
            return False
        if account.created_at > now - timedelta(days=policy.new_account_grace_days):
            return False
        return True

    def _prune_activity(self, accounts: list[Account], now: datetime) -> int:
        """Drop activity no current or future suspension can be checked against."""
        policy = self.policy
        keep_days = max(policy.first_suspension_days, policy.extended_suspension_days)
        cutoff = now - timedelta(days=keep_days)
        for account in accounts:
            if account.banned_at is not None and account.suspension_active(now):
                cutoff = min(cutoff, account.banned_at)
        try:
            return self.activity.prune(cutoff)
        except StoreUnavailable:
            logger.exception("Could not prune the activity log")
            return 0

    def _promote(self, account: Account, now: datetime) -> Account:
        policy = self.policy
        note = f"permanent: no activity within {policy.inactive_ban_days} days of suspension"
        reason = f"{account.ban_reason} | {note}" if account.ban_reason else note
        level = max(account.violation_level, policy.permanent_ban_level)
        updated = self.accounts.update(
            account.id,
            expected_version=account.version,
            banned=True,
            permanent_ban=True,
            violation_level=level,
            ban_expires_at=policy.permanent_expiry(now),
            ban_reason=reason,
            is_good_heart=False,
            good_heart_since=None,
        )
        self.violations.append(
            ViolationRecord(
                user_id=account.id,
                violation_count=level,
                reason=note,
                created_at=now,
                expires_at=None,
            )
        )
        return updated

    def sweep_inactive_bans(self, now: Optional[datetime] = None) -> SweepResult:
        """Promote long-standing suspensions without activity to permanent bans.

        Only ever tightens bans, so it is safe to run repeatedly and
        alongside reward evaluation.  Accounts that fail are skipped.
        """
        if self.activity is None:
            raise RuntimeError("An activity log is required to sweep inactive bans")
        now = ensure_utc(now or utcnow())
        result = SweepResult(swept_at=now)

        accounts = self.accounts.list_accounts()
        for account in accounts:
            if not self._sweepable(account, now):
                continue
            result.checked += 1
            try:
                if self.activity.has_activity_since(account.id, account.banned_at):
                    result.still_suspended.append(account.id)
                    continue
                self._promote(account, now)
            except (StoreUnavailable, VersionConflict):
                logger.exception("Skipping %s in inactivity sweep", account.id)
                result.failed.append(account.id)
                continue
            result.promoted.append(account.id)
            logger.info("Promoted %s to a permanent ban after inactivity", account.id)
            self.notify(account.id, events.BAN_PROMOTED, {"reason": "inactive_after_suspension"})

        result.pruned = self._prune_activity(accounts, now)
        logger.info(
            "Inactivity sweep: %d checked, %d promoted, %d still suspended, %d failed, %d pruned",
            result.checked, len(result.promoted), len(result.still_suspended), len(result.failed),
            result.pruned,
        )
        return result

    # ------------------------------------------------------------------
    # Good Heart badge
    # ------------------------------------------------------------------

    def refresh_good_heart(self, account: AccountRef, now: Optional[datetime] = None) -> Account:
        """Grant the badge once an account has been clean long enough."""
        snapshot = self._load(account)
        now = ensure_utc(now or utcnow())
        if snapshot.is_good_heart or snapshot.violation_level != 0 or snapshot.banned:
            return snapshot
        clean_since = snapshot.last_violation_at or snapshot.created_at
        if now - clean_since < timedelta(days=self.policy.good_heart_days):
            return snapshot
        try:
            updated = self.accounts.update(
                snapshot.id,
                expected_version=snapshot.version,
                is_good_heart=True,
                good_heart_since=now,
            )
        except VersionConflict:
            # Something changed underneath; the next refresh decides again.
            return self.accounts.get(snapshot.id)
        self.notify(snapshot.id, events.GOOD_HEART_GRANTED, {"since": now.isoformat()})
        return updated

    def award_good_hearts(self, now: Optional[datetime] = None) -> list[str]:
        """Refresh every account; return the ids that just earned the badge."""
        awarded = []
        for account in self.accounts.list_accounts():
            if self.refresh_good_heart(account, now).is_good_heart and not account.is_good_heart:
                awarded.append(account.id)
        return awarded

    # ------------------------------------------------------------------
    # Ledger bookkeeping
    # ------------------------------------------------------------------

    def reconcile_pending(self, account: AccountRef) -> Account:
        """Recompute pending reward from the reward action history."""
        snapshot = self._load(account)
        expected = max(self.rewards.total_for_actor(snapshot.id) - snapshot.confirmed_balance, 0)
        if expected == snapshot.pending_reward:
            return snapshot
        logger.warning(
            "Reconciling %s: pending %d -> %d", snapshot.id, snapshot.pending_reward, expected
        )
        return self.accounts.update(
            snapshot.id, expected_version=snapshot.version, pending_reward=expected
        )

    def settle(self, account: AccountRef, amount: int) -> Account:
        """Move *amount* from pending to confirmed once it has been paid out."""
        snapshot = self._load(account)
        if amount <= 0:
            raise ValueError("Settlement amount must be positive")
        if amount > snapshot.pending_reward:
            raise ValueError(
                f"Cannot settle {amount}; only {snapshot.pending_reward} is pending"
            )
        return self.accounts.update(
            snapshot.id,
            expected_version=snapshot.version,
            pending_reward=snapshot.pending_reward - amount,
            confirmed_balance=snapshot.confirmed_balance + amount,
        )

    def daily_summary(self, account: AccountRef, day: Optional[str] = None) -> DailySummary:
        snapshot = self._load(account)
        day = day or self._day(utcnow())
        summary = DailySummary(account_id=snapshot.id, day=day)
        for action in self.rewards.list_for_actor(snapshot.id, day=day):
            key = action.action_type.value
            summary.counts[key] = summary.counts.get(key, 0) + 1
            summary.total += action.amount
            if not self.policy.is_cap_exempt(action.action_type):
                summary.cap_counted += action.amount
        return summary
