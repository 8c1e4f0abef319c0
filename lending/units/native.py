"""
native.py - Native currency push payments

Native currency is what borrowers receive at origination and pay back with.
The lending pool holds it. A push payment is synchronous: the destination's
receiver hook (if any) runs before the Move is handed back, and a hook that
raises or returns False fails the payment.

Hooks run while the engine's reentrancy guard is held, so a hook that calls
back into a protected engine operation fails with ReentrancyError. Lending
errors raised inside a hook propagate unchanged; any other exception becomes
a TransferError.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from ..core import (
    Move, Unit, ExecuteResult, TransactionOrigin, OriginType,
    NATIVE_SYMBOL, UNIT_TYPE_NATIVE, SYSTEM_WALLET, ZERO,
    LedgerError, InsufficientBalance, TransferError,
    build_transaction, to_amount,
)
from ..ledger import Ledger


# (sender, amount) -> None/True to accept, False to reject
Receiver = Callable[[str, Decimal], Optional[bool]]


def native_currency(symbol: str = NATIVE_SYMBOL, name: str = "Native Currency") -> Unit:
    """Create the native currency unit. Wallet balances cannot go negative."""
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_NATIVE,
        min_balance=ZERO,
    )


class NativeCurrency:
    """Native currency transfers on a Ledger, with per-address receiver hooks."""

    def __init__(self, ledger: Ledger, symbol: str = NATIVE_SYMBOL):
        self.ledger = ledger
        self.symbol = symbol
        self._receivers: Dict[str, Receiver] = {}

    def balance_of(self, address: str) -> Decimal:
        return self.ledger.get_balance(address, self.symbol)

    def set_receiver(self, address: str, hook: Optional[Receiver]) -> None:
        """Install (or with None, remove) the hook called when `address` is paid."""
        if hook is None:
            self._receivers.pop(address, None)
        else:
            self._receivers[address] = hook

    def push(self, source: str, dest: str, amount: Any, contract_id: str) -> Move:
        """
        Pay `amount` from `source` to `dest`.

        Raises:
            TransferError: source cannot cover the amount, or dest rejects it
        """
        amount = to_amount(amount)
        balance = self.balance_of(source)
        if balance < amount:
            raise TransferError(f"{source} holds {balance} {self.symbol}, cannot pay {amount}")

        hook = self._receivers.get(dest)
        if hook is not None:
            try:
                accepted = hook(source, amount)
            except LedgerError:
                raise
            except Exception as e:
                raise TransferError(f"{dest} rejected {amount} {self.symbol}: {e}") from e
            if accepted is False:
                raise TransferError(f"{dest} rejected {amount} {self.symbol}")

        return Move(amount, self.symbol, source, dest, contract_id)

    def pull(self, payer: str, dest: str, amount: Any, contract_id: str) -> Move:
        """
        Payment sent by `payer` along with a call (no receiver hook involved).

        Raises:
            InsufficientBalance: payer does not hold the amount
        """
        amount = to_amount(amount)
        balance = self.balance_of(payer)
        if balance < amount:
            raise InsufficientBalance(f"{payer} holds {balance} {self.symbol}, cannot send {amount}")
        return Move(amount, self.symbol, payer, dest, contract_id)

    def fund(self, address: str, amount: Any) -> ExecuteResult:
        """Issue native currency to `address` from the system wallet."""
        self.ledger.ensure_wallet(address)
        move = Move(
            to_amount(amount), self.symbol, SYSTEM_WALLET, address,
            f"native_fund_{self.ledger.next_sequence}",
        )
        origin = TransactionOrigin(OriginType.SYSTEM, SYSTEM_WALLET, event_type="NATIVE_FUND")
        result = self.ledger.execute(build_transaction(self.ledger, [move], origin=origin))
        if result == ExecuteResult.REJECTED:
            raise TransferError(self.ledger.last_rejection)
        return result
