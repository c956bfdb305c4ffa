"""Exceptions raised by the ledger stores."""

from __future__ import annotations


class StoreUnavailable(RuntimeError):
    """The backing store could not be read or written.

    No decision was made; callers may retry the whole operation.
    """


class VersionConflict(RuntimeError):
    """A conditional update lost a race with another writer."""

    def __init__(self, account_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Account {account_id!r} is at version {actual}, expected {expected}"
        )
        self.account_id = account_id
        self.expected = expected
        self.actual = actual
