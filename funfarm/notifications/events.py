"""Typed notification events and the in-process event bus.

The policy engine publishes events here; UI bridges, realtime pushers and
webhook notifiers subscribe.  Delivery is fire-and-forget: a failing
handler is logged and never affects the decision that produced the event.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable

from funfarm.policy.models import utcnow

logger = logging.getLogger(__name__)

REWARD_GRANTED = "reward.granted"
VIOLATION_RECORDED = "violation.recorded"
REWARDS_SUSPENDED = "rewards.suspended"
ACCOUNT_BANNED = "account.banned"
BAN_PROMOTED = "ban.promoted"
GOOD_HEART_GRANTED = "good_heart.granted"
BONUS_APPROVED = "bonus.approved"
BONUS_REJECTED = "bonus.rejected"

EVENT_TYPES = [
    REWARD_GRANTED,
    VIOLATION_RECORDED,
    REWARDS_SUSPENDED,
    ACCOUNT_BANNED,
    BAN_PROMOTED,
    GOOD_HEART_GRANTED,
    BONUS_APPROVED,
    BONUS_REJECTED,
]


@dataclass
class NotificationEvent:
    """One event addressed to one account."""

    account_id: str
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat()
        return d


EventHandler = Callable[[NotificationEvent], None]


class EventBus:
    """Synchronous publish/subscribe hub."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._wildcard_handlers: list[EventHandler] = []

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for a specific event type."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type '{event_type}'")
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Register a handler for all event types."""
        self._wildcard_handlers.append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler | None = None) -> None:
        """Remove a handler (or all handlers) for an event type."""
        if handler is None:
            self._handlers.pop(event_type, None)
        else:
            handlers = self._handlers.get(event_type, [])
            self._handlers[event_type] = [h for h in handlers if h is not handler]

    def publish(self, event: NotificationEvent) -> None:
        """Dispatch *event* to every matching handler."""
        handlers = list(self._handlers.get(event.type, []))
        handlers.extend(self._wildcard_handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Error in event handler for %s", event.type)

    def emit(self, account_id: str, event_type: str, payload: dict[str, Any] | None = None) -> None:
        """Notification sink entry point used by the engine."""
        self.publish(NotificationEvent(account_id=account_id, type=event_type, payload=payload or {}))


class EventRecorder:
    """Handler that keeps events in memory, newest last.

    Backs incremental UI state: a subscriber reads only what arrived since
    its last cursor instead of re-fetching whole lists.
    """

    def __init__(self, limit: int = 1000) -> None:
        self._limit = limit
        self.events: list[NotificationEvent] = []

    def __call__(self, event: NotificationEvent) -> None:
        self.events.append(event)
        if len(self.events) > self._limit:
            del self.events[: len(self.events) - self._limit]

    def for_account(self, account_id: str, since_id: str = "") -> list[NotificationEvent]:
        """Events for *account_id* recorded after the event with *since_id*."""
        events = [e for e in self.events if e.account_id == account_id]
        if since_id:
            ids = [e.id for e in events]
            if since_id in ids:
                events = events[ids.index(since_id) + 1 :]
        return events
