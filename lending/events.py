"""
events.py - Lending notifications

Notifications are for outside observers only; nothing in the engine reads
them back. They are recorded after the operation that produced them has
committed, so a failed operation never leaves a notification behind.

Together with Ledger.transaction_log this is the audit trail.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

LENDER_REGISTERED = "LenderRegistered"
BORROWER_REGISTERED = "BorrowerRegistered"
LOAN_CREATED = "LoanCreated"
PAYMENT_MADE = "PaymentMade"
LOAN_COMPLETED = "LoanCompleted"
EARLY_PAYMENT_MADE = "EarlyPaymentMade"


@dataclass(frozen=True, slots=True)
class Notification:
    """
    Immutable record of something observable that happened.

    Attributes:
        name: Notification type (LoanCreated, PaymentMade, ...)
        timestamp: Ledger time at which it was emitted
        params: Payload as frozen tuple of (key, value) pairs
        sequence: Position in the EventLog
    """
    name: str
    timestamp: datetime
    params: tuple = ()
    sequence: int = 0

    @property
    def params_dict(self) -> Dict[str, Any]:
        return dict(self.params)

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v}" for k, v in self.params)
        return f"{self.name}({args})"


class EventLog:
    """Append-only list of notifications."""

    def __init__(self, verbose: bool = False):
        self._events: List[Notification] = []
        self.verbose = verbose

    def emit(self, name: str, timestamp: datetime, **params: Any) -> Notification:
        event = Notification(
            name=name,
            timestamp=timestamp,
            params=tuple(params.items()),
            sequence=len(self._events),
        )
        self._events.append(event)
        if self.verbose:
            print(f"[EVENT] {event!r}")
        return event

    def filter(self, name: Optional[str] = None, **params: Any) -> List[Notification]:
        """Notifications with this name (any, if None) whose params include `params`."""
        matches = []
        for event in self._events:
            if name is not None and event.name != name:
                continue
            payload = event.params_dict
            if all(payload.get(k) == v for k, v in params.items()):
                matches.append(event)
        return matches

    def last(self) -> Optional[Notification]:
        return self._events[-1] if self._events else None

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Notification]:
        return iter(list(self._events))
