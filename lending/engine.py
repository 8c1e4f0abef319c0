"""
engine.py - Loan Engine

LendingEngine owns the loan book: it originates loans, takes installment and
early payoff payments, settles completed loans and answers queries.

Every mutating operation follows the same steps:
1. Acquire the reentrancy guard
2. Load the loan and check authorization and preconditions (pure functions
   in units/loan.py); any failure raises before anything changes
3. Collect the moves from the collaborators (credit token, native currency,
   certificate issuer)
4. Execute ONE PendingTransaction carrying the moves, the loan state change
   and any new units; the ledger applies it all-or-nothing
5. Emit notifications for what was committed

Completion is not an operation of its own. It is folded into the
transaction of the payment that repays the loan, and since both payment
paths require an active loan, a loan completes exactly once.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from .core import (
    PendingTransaction, ExecuteResult, TransactionOrigin, OriginType,
    CREDIT_SYMBOL, NATIVE_SYMBOL, POOL_WALLET, DEFAULT_FEE_BPS,
    CERTIFICATE_URI_TEMPLATE, UNIT_TYPE_LOAN, ZERO,
    LedgerError, NotOwner, NotRegistered, InsufficientBalance, TransferError, LoanNotActive,
    build_transaction, to_amount,
)
from .ledger import Ledger
from .events import (
    EventLog, LOAN_CREATED, PAYMENT_MADE, LOAN_COMPLETED, EARLY_PAYMENT_MADE,
)
from .guard import ReentrancyGuard
from .registry import ParticipantRegistry
from .units.credit import CreditToken, credit_token
from .units.native import NativeCurrency, Receiver, native_currency
from .units.certificate import CertificateIssuer
from .units.loan import (
    Loan, EarlyPayoffQuote, Settlement,
    open_loan, apply_installment, apply_early_payoff, settle_loan, is_fully_repaid,
    validate_installment, validate_early_payoff, validate_fee,
    calculate_early_payoff, create_loan_unit, loan_state_change, load_loan,
    from_state_dict,
)


def create_lending_ledger(
    name: str = "lending",
    initial_time: Optional[datetime] = None,
    verbose: bool = True,
    test_mode: bool = False,
    pool_wallet: str = POOL_WALLET,
) -> Ledger:
    """Ledger with the credit and native units and the pool wallet registered."""
    ledger = Ledger(name, initial_time=initial_time, verbose=verbose, test_mode=test_mode)
    ledger.register_unit(credit_token())
    ledger.register_unit(native_currency())
    ledger.register_wallet(pool_wallet)
    return ledger


class LendingEngine:
    """
    Peer-to-peer loan engine operated by a single owner.

    Example:
        ledger = create_lending_ledger(initial_time=datetime(2025, 1, 1))
        engine = LendingEngine(ledger, owner="operator")
        engine.fund_pool(1_000_000)
        engine.register_lender("alice")
        engine.register_borrower("bob")
        engine.credit.issue("alice", 5000)

        loan_id = engine.create_loan("operator", "alice", "bob", 1000, 100, 5)
        engine.native.fund("bob", 1100)
        for _ in range(5):
            engine.pay_installment("bob", loan_id, 220)
        engine.balance_of("alice")   # 4000 + 1098
    """

    def __init__(
        self,
        ledger: Ledger,
        owner: str,
        fee_bps: int = DEFAULT_FEE_BPS,
        pool_wallet: str = POOL_WALLET,
        metadata_uri_template: str = CERTIFICATE_URI_TEMPLATE,
        credit_symbol: str = CREDIT_SYMBOL,
        native_symbol: str = NATIVE_SYMBOL,
        events: Optional[EventLog] = None,
    ):
        """
        Args:
            ledger: Ledger holding balances and loan state
            owner: Administrator address (loan creation, fee, emergency withdrawal)
            fee_bps: Platform fee on realized interest, at most MAX_FEE_BPS
            pool_wallet: Wallet paying out principal and receiving repayments
            metadata_uri_template: Certificate URI, formatted with loan_id
            credit_symbol: Unit symbol of the credit token
            native_symbol: Unit symbol of the native currency
            events: Notification log (a new one is created by default)
        """
        self.ledger = ledger
        self.owner = owner
        self.fee_bps = validate_fee(fee_bps)
        self.pool_wallet = pool_wallet
        self.verbose = ledger.verbose
        self.events = events if events is not None else EventLog(verbose=self.verbose)
        self.registry = ParticipantRegistry(self.events, clock=lambda: self.ledger.current_time)

        if not ledger.has_unit(credit_symbol):
            ledger.register_unit(credit_token(credit_symbol))
        if not ledger.has_unit(native_symbol):
            ledger.register_unit(native_currency(native_symbol))
        ledger.ensure_wallet(owner)
        ledger.ensure_wallet(pool_wallet)

        self.credit = CreditToken(ledger, credit_symbol)
        self.native = NativeCurrency(ledger, native_symbol)
        self.certificates = CertificateIssuer(metadata_uri_template)
        self._guard = ReentrancyGuard()
        self._next_loan_id = 1

    # ========================================================================
    # PARTICIPANT REGISTRATION
    # ========================================================================

    def register_lender(self, caller: str) -> None:
        self.registry.register_lender(caller)
        self.ledger.ensure_wallet(caller)

    def register_borrower(self, caller: str) -> None:
        self.registry.register_borrower(caller)
        self.ledger.ensure_wallet(caller)

    def is_lender(self, address: str) -> bool:
        return self.registry.is_lender(address)

    def is_borrower(self, address: str) -> bool:
        return self.registry.is_borrower(address)

    # ========================================================================
    # LOAN CREATION
    # ========================================================================

    def create_loan(
        self,
        caller: str,
        lender: str,
        borrower: str,
        amount: Any,
        interest: Any,
        installments: int,
    ) -> int:
        """
        Originate a loan: burn the lender's credit, pay the borrower in native
        currency, deliver a certificate to the lender.

        Returns:
            The new loan id (ids start at 1 and are never reused)

        Raises:
            NotOwner: caller is not the owner
            NotRegistered: lender or borrower is not registered
            InsufficientBalance: lender's credit balance is below amount
            InvalidLoanTerms: zero installments or other unusable terms
            TransferError: the pool cannot pay, or the borrower rejects the payment
            ReentrancyError: called from inside another protected operation
        """
        with self._guard.hold("create_loan"):
            self._require_owner(caller)
            if not self.registry.is_lender(lender):
                raise NotRegistered(f"{lender} is not a registered lender")
            if not self.registry.is_borrower(borrower):
                raise NotRegistered(f"{borrower} is not a registered borrower")
            principal = to_amount(amount, "amount")
            balance = self.credit.balance_of(lender)
            if balance < principal:
                raise InsufficientBalance(
                    f"{lender} holds {balance} {self.credit.symbol}, loan needs {principal}"
                )

            loan_id = self._next_loan_id
            now = self.ledger.current_time
            loan = open_loan(loan_id, lender, borrower, principal, interest, installments, now)

            burn = self.credit.burn(lender, loan.amount, f"loan_{loan_id}_principal")
            payout = self.native.push(self.pool_wallet, borrower, loan.amount, f"loan_{loan_id}_disbursement")
            certificate, delivery = self.certificates.mint(lender, loan_id, issued_at=now)

            pending = build_transaction(
                self.ledger,
                [burn, payout, delivery],
                origin=self._origin(OriginType.ADMIN, caller, loan, "CREATE"),
                units_to_create=(create_loan_unit(loan), certificate),
            )
            self._execute(pending)
            self._next_loan_id += 1

        self.events.emit(
            LOAN_CREATED, now,
            loan_id=loan_id, lender=lender, borrower=borrower, amount=loan.amount,
        )
        return loan_id

    # ========================================================================
    # REPAYMENT
    # ========================================================================

    def pay_installment(self, caller: str, loan_id: int, value: Any) -> Loan:
        """
        Pay one installment of exactly installment_amount.

        The payment that covers the last installment also completes the loan.

        Returns:
            The loan after the payment

        Raises:
            LoanNotActive, NotBorrower, InstallmentsComplete, PaymentMismatch,
            InsufficientBalance, ReentrancyError
        """
        with self._guard.hold("pay_installment"):
            value = to_amount(value, "value")
            loan = self.get_loan(loan_id)
            validate_installment(loan, caller, value)

            now = self.ledger.current_time
            moves = [self.native.pull(
                caller, self.pool_wallet, value,
                f"loan_{loan_id}_installment_{loan.installments_paid + 1}",
            )]
            updated = apply_installment(loan)
            settlement = None
            if is_fully_repaid(updated):
                updated, settlement = settle_loan(updated, self.fee_bps, now)
                moves.append(self._settlement_move(updated, settlement))

            self._execute(build_transaction(
                self.ledger, moves, [loan_state_change(loan, updated)],
                origin=self._origin(OriginType.USER_ACTION, caller, loan, "INSTALLMENT"),
            ))

        if settlement is not None:
            self._emit_completed(updated, settlement)
        self.events.emit(PAYMENT_MADE, now, loan_id=loan_id, amount=value)
        return updated

    def pay_early(self, caller: str, loan_id: int, value: Any) -> Loan:
        """
        Settle the loan in one payment using the 30-day prorated interest.

        The amount due is quote_early_payoff(loan_id).final_payment at the
        current ledger time; value must match it exactly.

        Returns:
            The completed loan

        Raises:
            LoanNotActive, NotBorrower, NothingOwed, PaymentMismatch,
            InsufficientBalance, ReentrancyError
        """
        with self._guard.hold("pay_early"):
            value = to_amount(value, "value")
            loan = self.get_loan(loan_id)
            now = self.ledger.current_time
            quote = calculate_early_payoff(loan, now) if loan.active else None
            validate_early_payoff(loan, caller, value, quote)

            payment = self.native.pull(caller, self.pool_wallet, value, f"loan_{loan_id}_early_payoff")
            updated, settlement = settle_loan(apply_early_payoff(loan, quote), self.fee_bps, now)

            self._execute(build_transaction(
                self.ledger,
                [payment, self._settlement_move(updated, settlement)],
                [loan_state_change(loan, updated)],
                origin=self._origin(OriginType.USER_ACTION, caller, loan, "EARLY_PAYOFF"),
            ))

        self._emit_completed(updated, settlement)
        self.events.emit(
            EARLY_PAYMENT_MADE, now,
            loan_id=loan_id, amount=value, days_used=quote.days_used,
        )
        return updated

    def quote_early_payoff(self, loan_id: int) -> EarlyPayoffQuote:
        """
        Early payoff figures at the current ledger time, without paying.

        Raises:
            LoanNotActive: the loan does not exist or is already completed
        """
        loan = self.get_loan(loan_id)
        if not loan.active:
            raise LoanNotActive(f"loan {loan_id} is not active")
        return calculate_early_payoff(loan, self.ledger.current_time)

    def _settlement_move(self, loan: Loan, settlement: Settlement):
        return self.credit.mint(loan.lender, settlement.lender_amount, f"loan_{loan.loan_id}_settlement")

    def _emit_completed(self, loan: Loan, settlement: Settlement) -> None:
        self.events.emit(
            LOAN_COMPLETED, loan.completed_at,
            loan_id=loan.loan_id,
            lender_amount=settlement.lender_amount,
            platform_fee=settlement.platform_fee,
        )

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_loan(self, loan_id: int) -> Loan:
        """Loan record for an id; Loan.empty(loan_id) if no such loan exists."""
        return load_loan(self.ledger, loan_id)

    def balance_of(self, address: str) -> Decimal:
        """Credit balance of an address."""
        return self.credit.balance_of(address)

    @property
    def loan_count(self) -> int:
        return self._next_loan_id - 1

    def list_loans(self, active_only: bool = False) -> List[Loan]:
        loans = [
            from_state_dict(self.ledger.get_unit_state(symbol))
            for symbol in self.ledger.list_units(UNIT_TYPE_LOAN)
        ]
        loans.sort(key=lambda loan: loan.loan_id)
        if active_only:
            loans = [loan for loan in loans if loan.active]
        return loans

    def loans_for(self, address: str) -> List[Loan]:
        """Loans where the address is the lender or the borrower."""
        return [
            loan for loan in self.list_loans()
            if address in (loan.lender, loan.borrower)
        ]

    def platform_fees_collected(self) -> Decimal:
        return sum((loan.platform_fee for loan in self.list_loans()), ZERO)

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def set_fee(self, caller: str, fee_bps: int) -> None:
        """
        Raises:
            NotOwner: caller is not the owner
            FeeAboveCap: fee_bps above 1000
        """
        self._require_owner(caller)
        self.fee_bps = validate_fee(fee_bps)
        if self.verbose:
            print(f"Fee set to {self.fee_bps} bps")

    def fund_pool(self, amount: Any) -> ExecuteResult:
        """Issue native currency into the pool wallet."""
        return self.native.fund(self.pool_wallet, amount)

    def set_native_receiver(self, address: str, hook: Optional[Receiver]) -> None:
        self.native.set_receiver(address, hook)

    def emergency_withdraw(self, caller: str, amount: Any = None) -> Decimal:
        """
        Pay the pool's native balance (or `amount` of it) to the owner.

        Independent of loan state.

        Returns:
            The amount withdrawn

        Raises:
            NotOwner, TransferError, ReentrancyError
        """
        with self._guard.hold("emergency_withdraw"):
            self._require_owner(caller)
            if amount is None:
                amount = self.native.balance_of(self.pool_wallet)
            amount = to_amount(amount, "amount")
            if amount < ZERO:
                raise ValueError(f"amount cannot be negative, got {amount}")
            if amount == ZERO:
                return ZERO

            move = self.native.push(
                self.pool_wallet, self.owner, amount,
                f"emergency_withdraw_{self.ledger.next_sequence}",
            )
            self._execute(build_transaction(
                self.ledger, [move],
                origin=TransactionOrigin(OriginType.ADMIN, caller, event_type="EMERGENCY_WITHDRAW"),
            ))
        if self.verbose:
            print(f"Emergency withdrawal of {amount} {self.native.symbol} to {self.owner}")
        return amount

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise NotOwner(f"{caller} is not the owner")

    @staticmethod
    def _origin(origin_type: OriginType, caller: str, loan: Loan, event_type: str) -> TransactionOrigin:
        return TransactionOrigin(origin_type, caller, unit_symbol=loan.symbol, event_type=event_type)

    def _execute(self, pending: PendingTransaction) -> None:
        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            raise TransferError(self.ledger.last_rejection)
        if result == ExecuteResult.ALREADY_APPLIED:
            raise LedgerError(f"transaction {pending.intent_id} was already applied")
