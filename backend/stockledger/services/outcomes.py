# Overview: Structured results returned by the transaction orchestrator.

"""
Every orchestrator call returns exactly one of:

- Committed(value)        the event applied atomically; value is the created record
- Rejected(error)         nothing applied; error is a LedgerError subclass
- DeferredOffline(temp_id, kind)  the store was unreachable; the event waits in the offline queue

Callers branch on the type (or on .status) instead of catching exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import LedgerError


@dataclass(frozen=True)
class Committed:
    value: Any
    status: str = "committed"

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    error: LedgerError
    status: str = "rejected"

    @property
    def ok(self) -> bool:
        return False

    @property
    def retryable(self) -> bool:
        return self.error.retryable


@dataclass(frozen=True)
class DeferredOffline:
    temp_id: str
    kind: str
    status: str = "deferred_offline"

    @property
    def ok(self) -> bool:
        return True


Outcome = Committed | Rejected | DeferredOffline
