"""File-backed stores for accounts, reward actions, violations and activity."""

from funfarm.ledger.errors import StoreUnavailable, VersionConflict
from funfarm.ledger.store import AccountStore, ActivityLog, RewardActionStore, ViolationStore

__all__ = [
    "AccountStore",
    "ActivityLog",
    "RewardActionStore",
    "StoreUnavailable",
    "VersionConflict",
    "ViolationStore",
]
