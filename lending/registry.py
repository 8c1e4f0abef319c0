"""
registry.py - Participant registry

Two independent membership sets: lenders and borrowers. An address may be
in both, one or neither. Registration is self-service and idempotent, and
there is no way to leave a set.
"""

from __future__ import annotations
from datetime import datetime
from typing import Callable, Optional, Set

from .events import EventLog, LENDER_REGISTERED, BORROWER_REGISTERED


class ParticipantRegistry:
    """
    Lender and borrower membership.

    Args:
        events: Log that receives LenderRegistered / BorrowerRegistered
        clock: Returns the timestamp for notifications (ledger time in the engine)
    """

    def __init__(
        self,
        events: Optional[EventLog] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._lenders: Set[str] = set()
        self._borrowers: Set[str] = set()
        self.events = events if events is not None else EventLog()
        self._clock = clock or (lambda: datetime(1970, 1, 1))

    def register_lender(self, caller: str) -> None:
        """Add caller to the lender set. Registering twice is a no-op apart from the notification."""
        _require_address(caller)
        self._lenders.add(caller)
        self.events.emit(LENDER_REGISTERED, self._clock(), address=caller)

    def register_borrower(self, caller: str) -> None:
        _require_address(caller)
        self._borrowers.add(caller)
        self.events.emit(BORROWER_REGISTERED, self._clock(), address=caller)

    def is_lender(self, address: str) -> bool:
        return address in self._lenders

    def is_borrower(self, address: str) -> bool:
        return address in self._borrowers

    @property
    def lenders(self) -> frozenset:
        return frozenset(self._lenders)

    @property
    def borrowers(self) -> frozenset:
        return frozenset(self._borrowers)


def _require_address(address: str) -> None:
    if not address or not address.strip():
        raise ValueError("address cannot be empty")
