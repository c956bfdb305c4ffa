"""Tests for the FastAPI backend."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from fastapi.testclient import TestClient

from funfarm.config import Settings, build_engine
from funfarm.ledger.errors import StoreUnavailable
from funfarm.ledger.store import AccountStore
from web.backend.app.main import app
from web.backend.app.middleware.auth import configure

ADMIN = {"X-Admin-Token": "s3cret"}
SERVICE = {"X-Service-Token": "svc"}

QUALITY_POST = {
    "text": "Harvest report from the north field, with photos of every row. " * 3,
    "image_count": 2,
}


def _client(tmpdir: str, admin_token: str = "s3cret", service_token: str = "svc") -> TestClient:
    settings = Settings(home=Path(tmpdir), admin_token=admin_token, service_token=service_token)
    configure(settings, build_engine(settings))
    return TestClient(app)


def _create(client: TestClient, account_id: str = "alice") -> None:
    assert client.post("/api/accounts", json={"id": account_id}, headers=SERVICE).status_code == 201


def _evaluate(client: TestClient, **body) -> dict:
    resp = client.post("/api/rewards/evaluate", json=body, headers=SERVICE)
    assert resp.status_code == 200
    return resp.json()


def test_health():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        assert client.get("/health").json() == {"status": "healthy"}


def test_account_lifecycle():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        _create(client)
        assert client.post(
            "/api/accounts", json={"id": "alice"}, headers=SERVICE
        ).status_code == 409

        data = client.get("/api/accounts/alice").json()
        assert data["pending_reward"] == 0
        assert data["violation_level"] == 0
        assert client.get("/api/accounts/nobody").status_code == 404


def test_evaluate_and_history():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        _create(client)

        first = _evaluate(client, account_id="alice", action_type="like", target_id="post-1")
        assert first["granted"] is True
        assert first["amount"] == 1_000
        assert first["rejection"] is None

        second = _evaluate(client, account_id="alice", action_type="like", target_id="post-1")
        assert second["granted"] is False
        assert second["rejection"] == "already_rewarded"

        post = _evaluate(
            client, account_id="alice", action_type="post", target_id="post-9", **QUALITY_POST
        )
        assert post["amount"] == 10_000

        rewards = client.get("/api/accounts/alice/rewards").json()
        assert [r["action_type"] for r in rewards] == ["like", "post"]

        summary = client.get("/api/accounts/alice/summary").json()
        assert summary["total"] == 11_000
        assert summary["daily_cap"] == 500_000


def test_evaluate_rejects_bad_input():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        _create(client)
        assert client.post("/api/rewards/evaluate", json={
            "account_id": "alice", "action_type": "bonus", "target_id": "post-1",
        }, headers=SERVICE).status_code == 400
        assert client.post("/api/rewards/evaluate", json={
            "account_id": "nobody", "action_type": "like", "target_id": "post-1",
        }, headers=SERVICE).status_code == 404
        short = _evaluate(
            client, account_id="alice", action_type="comment", target_id="post-1", text="nice"
        )
        assert short["rejection"] == "quality_gate_failed"


def test_reporting_routes_require_service_token():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        like = {"account_id": "alice", "action_type": "like", "target_id": "post-1"}

        assert client.post("/api/accounts", json={"id": "alice"}).status_code == 401
        assert client.post(
            "/api/accounts", json={"id": "alice"}, headers={"X-Service-Token": "guess"}
        ).status_code == 401
        _create(client)

        assert client.post("/api/rewards/evaluate", json=like).status_code == 401
        assert client.post("/api/accounts/alice/reconcile").status_code == 401
        assert client.post("/api/bonus-requests", json={
            "post_id": "post-1", "user_id": "alice",
        }).status_code == 401
        assert client.get("/api/accounts/alice").json()["pending_reward"] == 0

        # Administrators may report actions too
        resp = client.post("/api/rewards/evaluate", json=like, headers=ADMIN)
        assert resp.json()["granted"] is True


def test_reporting_routes_closed_without_tokens():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir, admin_token="", service_token="")
        assert client.post(
            "/api/accounts", json={"id": "alice"}, headers=SERVICE
        ).status_code == 403


def test_client_timestamps_are_ignored():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        _create(client)
        for reason in ("spam", "spam again"):
            client.post(
                "/api/violations", json={"account_id": "alice", "reason": reason}, headers=ADMIN
            )

        later = (datetime.now(timezone.utc) + timedelta(days=8)).isoformat()
        decision = _evaluate(
            client, account_id="alice", action_type="like", target_id="post-1", occurred_at=later
        )
        assert decision["granted"] is False
        assert decision["rejection"] == "suspended"
        assert client.get("/api/accounts/alice/rewards").json() == []


def test_daily_limit_holds_across_claimed_days():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        _create(client)
        start = datetime.now(timezone.utc)

        granted = 0
        for i in range(8):
            decision = _evaluate(
                client,
                account_id="alice",
                action_type="share",
                target_id=f"post-{i}",
                occurred_at=(start + timedelta(days=i)).isoformat(),
            )
            granted += decision["granted"]
        assert granted == 5


def test_own_post_interactions_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        _create(client)
        own = _evaluate(
            client, account_id="alice", action_type="like", target_id="post-1",
            target_owner_id="alice",
        )
        assert own["rejection"] == "quality_gate_failed"

        other = _evaluate(
            client, account_id="alice", action_type="like", target_id="post-1",
            target_owner_id="bob",
        )
        assert other["granted"] is True


def test_admin_routes_require_token():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        _create(client)
        body = {"account_id": "alice", "reason": "spam"}

        assert client.post("/api/violations", json=body).status_code == 401
        assert client.post(
            "/api/violations", json=body, headers={"X-Admin-Token": "wrong"}
        ).status_code == 401
        assert client.post("/api/violations", json=body, headers=SERVICE).status_code == 401

        resp = client.post("/api/violations", json=body, headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json()["violation_level"] == 1

        history = client.get("/api/accounts/alice/violations").json()
        assert [v["violation_count"] for v in history] == [1]


def test_admin_routes_closed_without_token():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir, admin_token="")
        assert client.post("/api/moderation/sweep", headers=ADMIN).status_code == 403


def test_moderation_endpoints():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        _create(client)

        banned = client.post(
            "/api/violations", json={"account_id": "alice", "reason": "bot", "severe": True},
            headers=ADMIN,
        ).json()
        assert banned["permanent_ban"] is True

        sweep = client.post("/api/moderation/sweep", headers=ADMIN).json()
        assert sweep["checked"] == 0
        assert sweep["promoted"] == []
        assert sweep["pruned"] == 0

        pardoned = client.post("/api/moderation/pardon/alice", headers=ADMIN).json()
        assert pardoned["banned"] is False

        awarded = client.post("/api/moderation/good-heart", headers=ADMIN).json()
        assert awarded == {"awarded": []}


def test_reconcile_and_settle():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        _create(client)
        _evaluate(client, account_id="alice", action_type="share", target_id="post-1")

        reconciled = client.post("/api/accounts/alice/reconcile", headers=SERVICE).json()
        assert reconciled["pending_reward"] == 10_000
        assert client.post(
            "/api/accounts/alice/settle", json={"amount": 4_000}
        ).status_code == 401

        settled = client.post(
            "/api/accounts/alice/settle", json={"amount": 4_000}, headers=ADMIN
        ).json()
        assert settled["pending_reward"] == 6_000
        assert settled["confirmed_balance"] == 4_000
        assert client.post(
            "/api/accounts/alice/settle", json={"amount": 40_000}, headers=ADMIN
        ).status_code == 400


def test_bonus_flow():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        _create(client)

        submit = {"post_id": "post-1", "user_id": "alice", "text": "Mango harvest", "image_count": 1}
        created = client.post("/api/bonus-requests", json=submit, headers=SERVICE).json()
        assert created["created"] is True
        request_id = created["request"]["id"]

        repeat = client.post("/api/bonus-requests", json=submit, headers=SERVICE).json()
        assert repeat["created"] is False
        assert repeat["rejection"] == "already_requested"

        assert client.get("/api/bonus-requests").status_code == 401
        pending = client.get("/api/bonus-requests", params={"status": "pending"}, headers=ADMIN)
        assert [r["id"] for r in pending.json()] == [request_id]

        resolved = client.post(
            f"/api/bonus-requests/{request_id}/resolve",
            json={"decision": "approved", "reviewer_id": "admin-1"},
            headers=ADMIN,
        ).json()
        assert resolved["status"] == "approved"
        assert resolved["bonus_amount"] == 5_000
        assert client.get("/api/accounts/alice").json()["pending_reward"] == 5_000

        assert client.post(
            "/api/bonus-requests/missing/resolve", json={"decision": "rejected"}, headers=ADMIN
        ).status_code == 404


def test_policy_endpoint():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = _client(tmpdir)
        policy = client.get("/api/policy").json()
        assert policy["version"] == "3.1"
        assert policy["amounts"]["like"] == 1_000
        assert policy["daily_limits"]["share"] == 5


def test_store_outage_maps_to_503():
    class _DownStore(AccountStore):
        def find(self, account_id):
            raise StoreUnavailable("disk gone")

    with tempfile.TemporaryDirectory() as tmpdir:
        settings = Settings(home=Path(tmpdir), admin_token="s3cret")
        engine = build_engine(settings)
        engine.accounts = _DownStore(Path(tmpdir) / "down")
        configure(settings, engine)
        client = TestClient(app)
        assert client.get("/api/accounts/alice").status_code == 503
