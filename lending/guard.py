"""
guard.py - Reentrancy guard for protected lending operations

One guard covers a whole class of operations. A token is acquired on entry
and released on every exit path, error paths included. Acquiring it while it
is held raises ReentrancyError; guards never nest.

Example:
    guard = ReentrancyGuard()
    with guard.hold("pay_installment"):
        ...  # a nested `with guard.hold(...)` raises ReentrancyError
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, Optional

from .core import ReentrancyError


class ReentrancyGuard:

    def __init__(self):
        self._holder: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> Optional[str]:
        """Name of the operation currently holding the token."""
        return self._holder

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        if self._holder is not None:
            raise ReentrancyError(
                f"{operation} called while {self._holder} is in progress"
            )
        self._holder = operation
        try:
            yield
        finally:
            self._holder = None
