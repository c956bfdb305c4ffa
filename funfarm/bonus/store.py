"""File-based JSON storage for quality-post bonus requests.

Backed by ``~/.funfarm/bonus/requests.json``.  At most one request exists
per ``(post_id, user_id)``; decided requests are never modified again.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from funfarm.config import store_dir
from funfarm.ledger.errors import StoreUnavailable
from funfarm.policy.models import utcnow


class BonusStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class BonusRequest:
    """A user's claim that a post deserves the quality bonus."""

    id: str
    post_id: str
    user_id: str
    status: BonusStatus = BonusStatus.PENDING
    bonus_amount: int = 0
    created_at: str = ""
    reviewed_at: str = ""
    reviewed_by: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status != BonusStatus.PENDING


def _request_from_dict(d: dict) -> BonusRequest:
    return BonusRequest(
        id=d["id"],
        post_id=d["post_id"],
        user_id=d["user_id"],
        status=BonusStatus(d.get("status", "pending")),
        bonus_amount=int(d.get("bonus_amount", 0)),
        created_at=d.get("created_at", ""),
        reviewed_at=d.get("reviewed_at", ""),
        reviewed_by=d.get("reviewed_by", ""),
    )


class BonusRequestStore:
    """File-based storage for bonus requests.

    Storage path: ``~/.funfarm/bonus/`` with:
    - ``requests.json`` -- list of bonus request dicts
    """

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        self._base = Path(base_dir) if base_dir is not None else store_dir("bonus")
        self._base.mkdir(parents=True, exist_ok=True)
        self._requests_path = self._base / "requests.json"
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self) -> list[dict]:
        if not self._requests_path.exists():
            return []
        try:
            data = json.loads(self._requests_path.read_text())
        except json.JSONDecodeError as exc:
            raise StoreUnavailable(f"Corrupt store file {self._requests_path}: {exc}") from exc
        except OSError as exc:
            raise StoreUnavailable(f"Cannot read {self._requests_path}: {exc}") from exc
        if not isinstance(data, list):
            raise StoreUnavailable(f"Unexpected {type(data).__name__} in {self._requests_path}")
        return data

    def _write_json(self, data: list[dict]) -> None:
        try:
            self._requests_path.write_text(json.dumps(data, indent=2, default=str))
        except OSError as exc:
            raise StoreUnavailable(f"Cannot write {self._requests_path}: {exc}") from exc

    @staticmethod
    def _to_dict(request: BonusRequest) -> dict:
        d = asdict(request)
        d["status"] = request.status.value
        return d

    # ------------------------------------------------------------------
    # Bonus request CRUD
    # ------------------------------------------------------------------

    def create_if_absent(self, post_id: str, user_id: str) -> tuple[BonusRequest, bool]:
        """Create a pending request unless one exists for the pair.

        Returns ``(request, created)``; when *created* is False the request
        is the existing one, in whatever state it is.
        """
        with self._lock:
            requests = self._read_json()
            for r in requests:
                if r["post_id"] == post_id and r["user_id"] == user_id:
                    return _request_from_dict(r), False
            request = BonusRequest(
                id=str(uuid.uuid4()),
                post_id=post_id,
                user_id=user_id,
                created_at=utcnow().isoformat(),
            )
            requests.append(self._to_dict(request))
            self._write_json(requests)
            return request, True

    def get_request(self, request_id: str) -> Optional[BonusRequest]:
        """Look up a bonus request by ID. Returns None if not found."""
        for r in self._read_json():
            if r["id"] == request_id:
                return _request_from_dict(r)
        return None

    def find(self, post_id: str, user_id: str) -> Optional[BonusRequest]:
        for r in self._read_json():
            if r["post_id"] == post_id and r["user_id"] == user_id:
                return _request_from_dict(r)
        return None

    def list_requests(self, status: Optional[BonusStatus | str] = None) -> list[BonusRequest]:
        """Return all bonus requests, optionally filtered by status."""
        requests = [_request_from_dict(r) for r in self._read_json()]
        if status:
            wanted = BonusStatus(status)
            requests = [r for r in requests if r.status == wanted]
        return requests

    def decide(
        self,
        request_id: str,
        status: BonusStatus,
        reviewer_id: str,
        bonus_amount: int = 0,
        decided_at: Optional[datetime] = None,
    ) -> Optional[BonusRequest]:
        """Move a pending request to *status*.

        Returns the updated request, the unchanged request if it was already
        decided, or None if it does not exist.
        """
        if status == BonusStatus.PENDING:
            raise ValueError("A decision must approve or reject")
        with self._lock:
            requests = self._read_json()
            for r in requests:
                if r["id"] == request_id:
                    if r.get("status", "pending") != BonusStatus.PENDING.value:
                        return _request_from_dict(r)  # Already decided
                    r["status"] = status.value
                    r["bonus_amount"] = bonus_amount
                    r["reviewed_at"] = (decided_at or utcnow()).isoformat()
                    r["reviewed_by"] = reviewer_id
                    self._write_json(requests)
                    return _request_from_dict(r)
        return None

    def get_pending_count(self) -> int:
        """Return the number of pending bonus requests."""
        return len(self.list_requests(status=BonusStatus.PENDING))
