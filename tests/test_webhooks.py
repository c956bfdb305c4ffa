"""Tests for webhook delivery of notification events."""

import json
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx

from funfarm.ledger.store import AccountStore, ActivityLog, RewardActionStore, ViolationStore
from funfarm.notifications.events import REWARD_GRANTED, EventBus, NotificationEvent
from funfarm.notifications.webhooks import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    WebhookNotifier,
    sign_payload,
    verify_signature,
)
from funfarm.policy.engine import RewardEngine

URL = "https://realtime.example.test/hooks/funfarm"


def _notifier(handler, secret: str = "topsecret") -> WebhookNotifier:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return WebhookNotifier(URL, secret=secret, client=client)


def _event() -> NotificationEvent:
    return NotificationEvent(account_id="alice", type=REWARD_GRANTED, payload={"amount": 1_000})


def test_signature_roundtrip():
    body = b'{"amount": 1000}'
    signature = sign_payload(body, "topsecret")
    assert signature.startswith("sha256=")
    assert verify_signature(body, "topsecret", signature)
    assert not verify_signature(body, "other", signature)
    assert not verify_signature(b"{}", "topsecret", signature)


def test_delivers_signed_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    notifier = _notifier(handler)
    assert notifier.deliver(_event())
    assert notifier.last_status == 204

    request = seen[0]
    assert str(request.url) == URL
    assert request.headers[EVENT_HEADER] == REWARD_GRANTED
    assert verify_signature(request.content, "topsecret", request.headers[SIGNATURE_HEADER])
    body = json.loads(request.content)
    assert body["account_id"] == "alice"
    assert body["payload"] == {"amount": 1_000}


def test_unsigned_without_secret():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    assert _notifier(handler, secret="").deliver(_event())
    assert SIGNATURE_HEADER not in seen[0].headers


def test_error_status_reported():
    notifier = _notifier(lambda request: httpx.Response(500))
    assert not notifier.deliver(_event())
    assert notifier.last_status == 500


def test_transport_error_swallowed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    notifier = _notifier(handler)
    assert not notifier.deliver(_event())
    assert notifier.last_status == 0


def test_subscribed_to_bus():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content)["type"])
        return httpx.Response(200)

    bus = EventBus()
    notifier = _notifier(handler)
    bus.subscribe_all(notifier)
    bus.emit("alice", REWARD_GRANTED, {"amount": 1_000})
    notifier.close()
    assert seen == [REWARD_GRANTED]


def test_handler_errors_logged_not_raised():
    notifier = _notifier(lambda request: httpx.Response(200))
    notifier.deliver = lambda event: 1 / 0
    assert notifier(_event()).result(timeout=5) is False
    notifier.close()


def test_slow_endpoint_does_not_block_decisions():
    release = threading.Event()
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        release.wait(timeout=10)
        seen.append(json.loads(request.content)["type"])
        return httpx.Response(200)

    notifier = _notifier(handler)
    bus = EventBus()
    bus.subscribe_all(notifier)

    now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    with tempfile.TemporaryDirectory() as tmpdir:
        base = Path(tmpdir)
        engine = RewardEngine(
            accounts=AccountStore(base / "accounts"),
            rewards=RewardActionStore(base / "rewards"),
            violations=ViolationStore(base / "violations"),
            activity=ActivityLog(base / "activity"),
            notifier=bus,
        )
        engine.accounts.create("alice", created_at=now - timedelta(days=60))

        decision = engine.evaluate_action("alice", "like", "post-1", occurred_at=now)
        assert decision.granted
        assert seen == []

        release.set()
        notifier.close()
        assert seen == [REWARD_GRANTED]
