"""Notification sink: event bus plus outbound webhook delivery."""

from funfarm.notifications.events import EventBus, EventRecorder, NotificationEvent

__all__ = ["EventBus", "EventRecorder", "NotificationEvent"]
