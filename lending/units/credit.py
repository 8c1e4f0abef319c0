"""
credit.py - Fungible credit token (the Credit Ledger collaborator)

The lending engine depends on three operations of the credit token:
    mint(address, amount)    SYSTEM_WALLET -> address
    burn(address, amount)    address -> SYSTEM_WALLET
    balance_of(address)

mint() and burn() return Moves instead of executing them, so the engine can
place them in the same atomic transaction as the loan state change they
belong to. issue() and redeem() execute standalone transactions for
operator-side funding.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any

from ..core import (
    Move, Unit, ExecuteResult, TransactionOrigin, OriginType,
    CREDIT_SYMBOL, UNIT_TYPE_CREDIT, SYSTEM_WALLET, ZERO,
    InsufficientBalance, TransferError,
    build_transaction, to_amount,
)
from ..ledger import Ledger


def credit_token(symbol: str = CREDIT_SYMBOL, name: str = "P2P Lending Credit") -> Unit:
    """
    Create the credit token unit.

    Balances can never go negative; issuance and redemption go through
    SYSTEM_WALLET, which is exempt from the limit.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_CREDIT,
        min_balance=ZERO,
    )


class CreditToken:
    """Credit Ledger collaborator backed by a credit unit on a Ledger."""

    def __init__(self, ledger: Ledger, symbol: str = CREDIT_SYMBOL):
        self.ledger = ledger
        self.symbol = symbol

    def balance_of(self, address: str) -> Decimal:
        return self.ledger.get_balance(address, self.symbol)

    def total_supply(self) -> Decimal:
        """Credit outstanding in participant wallets (minted minus burned)."""
        return -self.ledger.get_balance(SYSTEM_WALLET, self.symbol)

    def mint(self, to: str, amount: Any, contract_id: str) -> Move:
        """Move crediting `amount` to `to` out of the system wallet."""
        return Move(to_amount(amount), self.symbol, SYSTEM_WALLET, to, contract_id)

    def burn(self, holder: str, amount: Any, contract_id: str) -> Move:
        """
        Move debiting `amount` from `holder` back to the system wallet.

        Raises:
            InsufficientBalance: if the holder's balance is below amount
        """
        amount = to_amount(amount)
        balance = self.balance_of(holder)
        if balance < amount:
            raise InsufficientBalance(
                f"{holder} holds {balance} {self.symbol}, cannot burn {amount}"
            )
        return Move(amount, self.symbol, holder, SYSTEM_WALLET, contract_id)

    def issue(self, to: str, amount: Any) -> ExecuteResult:
        """Mint credit to `to` in its own transaction."""
        self.ledger.ensure_wallet(to)
        move = self.mint(to, amount, f"credit_issue_{self.ledger.next_sequence}")
        origin = TransactionOrigin(OriginType.SYSTEM, SYSTEM_WALLET, event_type="CREDIT_ISSUE")
        return self._execute([move], origin)

    def redeem(self, holder: str, amount: Any) -> ExecuteResult:
        """Burn credit from `holder` in its own transaction."""
        move = self.burn(holder, amount, f"credit_redeem_{self.ledger.next_sequence}")
        origin = TransactionOrigin(OriginType.SYSTEM, holder, event_type="CREDIT_REDEEM")
        return self._execute([move], origin)

    def _execute(self, moves, origin: TransactionOrigin) -> ExecuteResult:
        result = self.ledger.execute(build_transaction(self.ledger, moves, origin=origin))
        if result == ExecuteResult.REJECTED:
            raise TransferError(self.ledger.last_rejection)
        return result
