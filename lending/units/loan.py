"""
loan.py - Peer-to-peer installment loans

This module holds the loan record and every calculation on it, using the
same split as the other instruments:

1. FROZEN DATACLASSES (explicit inputs):
   - Loan: immutable snapshot of one loan (terms and repayment progress)
   - EarlyPayoffQuote: result of the early-payoff proration
   - Settlement: result of the completion fee split

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - All inputs explicit, no LedgerView
   - Integer (floor) arithmetic on whole-unit Decimals

3. STATE TRANSITIONS (open_loan, apply_*, settle_loan, validate_*):
   - Take a Loan, return a new Loan or raise a lending error
   - Never touch the ledger

4. ADAPTER FUNCTIONS (load_loan, to_state_dict, create_loan_unit):
   - The only place that reads loan state from a LedgerView
   - Absent loans load as Loan.empty(), never as an error

Key Formulas:
    total_to_pay       = amount + interest
    installment_amount = total_to_pay // installments
    days_used          = clamp((now - start_time) // 1 day, 1, 30)
    daily_interest     = (total_to_pay - amount) // 30
    real_total         = amount + daily_interest * days_used
    final_payment      = real_total - total_paid
    platform_fee       = (total_paid - amount) * fee_bps // 10000
    lender_amount      = total_paid - platform_fee
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from ..core import (
    LedgerView, Unit, UnitStateChange,
    UNIT_TYPE_LOAN, BPS_DENOMINATOR, EARLY_PAYOFF_CAP_DAYS, MAX_FEE_BPS, MAX_AMOUNT, ZERO,
    LoanNotActive, NotBorrower, InstallmentsComplete, PaymentMismatch,
    NothingOwed, InvalidLoanTerms, FeeAboveCap,
    _freeze_state, to_amount,
)

LOAN_PREFIX = "LOAN_"

ONE_DAY = timedelta(days=1)


def loan_symbol(loan_id: int) -> str:
    return f"{LOAN_PREFIX}{loan_id}"


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Loan:
    """
    Immutable snapshot of a loan.

    Terms (lender, borrower, amount, total_to_pay, start_time, installments,
    installment_amount) are fixed at origination. Progress fields change with
    each payment; each change produces a new Loan.

    A record with an empty lender is the default returned for ids that were
    never allocated: callers check `exists` (or `active`) to tell them apart.
    """
    loan_id: int
    lender: str
    borrower: str
    amount: Decimal
    total_to_pay: Decimal
    total_paid: Decimal
    start_time: Optional[datetime]
    installments: int
    installment_amount: Decimal
    installments_paid: int
    active: bool
    # Settlement results (zero until the loan completes)
    platform_fee: Decimal = ZERO
    lender_amount: Decimal = ZERO
    completed_at: Optional[datetime] = None

    @classmethod
    def empty(cls, loan_id: int = 0) -> Loan:
        """Zero-valued record for an id with no loan behind it."""
        return cls(
            loan_id=loan_id,
            lender="",
            borrower="",
            amount=ZERO,
            total_to_pay=ZERO,
            total_paid=ZERO,
            start_time=None,
            installments=0,
            installment_amount=ZERO,
            installments_paid=0,
            active=False,
        )

    @property
    def exists(self) -> bool:
        return bool(self.lender)

    @property
    def symbol(self) -> str:
        return loan_symbol(self.loan_id)

    @property
    def scheduled_interest(self) -> Decimal:
        return self.total_to_pay - self.amount

    @property
    def remaining_installments(self) -> int:
        return self.installments - self.installments_paid

    @property
    def outstanding(self) -> Decimal:
        """Amount still due on the installment schedule (zero once closed)."""
        if not self.active:
            return ZERO
        return self.installment_amount * self.remaining_installments


@dataclass(frozen=True, slots=True)
class EarlyPayoffQuote:
    """What an early payoff would cost at a given time."""
    loan_id: int
    days_used: int
    daily_interest: Decimal
    real_total: Decimal
    final_payment: Decimal


@dataclass(frozen=True, slots=True)
class Settlement:
    """
    Fee split at completion.

    interest is the realized interest (total_paid - amount), which differs
    from the scheduled interest when the loan was paid early.
    lender_amount + platform_fee == total_paid always holds.
    """
    interest: Decimal
    platform_fee: Decimal
    lender_amount: Decimal


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_installment_amount(total_to_pay: Decimal, installments: int) -> Decimal:
    """
    Per-installment amount: total_to_pay // installments.

    The remainder is never collected, so installments * result <= total_to_pay.

    Raises:
        InvalidLoanTerms: installments is not positive
    """
    if installments <= 0:
        raise InvalidLoanTerms(f"installments must be positive, got {installments}")
    return total_to_pay // Decimal(installments)


def calculate_days_used(start_time: datetime, now: datetime) -> int:
    """
    Whole days elapsed since start_time, clamped to [1, EARLY_PAYOFF_CAP_DAYS].

    Example:
        calculate_days_used(t0, t0)                       -> 1
        calculate_days_used(t0, t0 + timedelta(days=10))  -> 10
        calculate_days_used(t0, t0 + timedelta(days=90))  -> 30
    """
    days = (now - start_time) // ONE_DAY
    if days <= 0:
        days = 1
    return min(days, EARLY_PAYOFF_CAP_DAYS)


def calculate_daily_interest(amount: Decimal, total_to_pay: Decimal) -> Decimal:
    """Full scheduled interest spread evenly over the 30-day cap (floored)."""
    return (total_to_pay - amount) // Decimal(EARLY_PAYOFF_CAP_DAYS)


def calculate_early_payoff(loan: Loan, now: datetime) -> EarlyPayoffQuote:
    """
    Prorate the loan's interest for a payoff at `now`.

    final_payment nets out everything already paid. Installments paid before
    the payoff were charged at the full schedule rate, while real_total uses
    the prorated rate, so final_payment can be zero or negative: the loan is
    then already covered and pay_early refuses it.

    Example:
        amount=1000, interest=100, paid 10 days after start
        daily_interest = 100 // 30 = 3
        real_total     = 1000 + 3 * 10 = 1030
        final_payment  = 1030 - 0 = 1030
    """
    days_used = calculate_days_used(loan.start_time, now)
    daily_interest = calculate_daily_interest(loan.amount, loan.total_to_pay)
    real_total = loan.amount + daily_interest * days_used
    return EarlyPayoffQuote(
        loan_id=loan.loan_id,
        days_used=days_used,
        daily_interest=daily_interest,
        real_total=real_total,
        final_payment=real_total - loan.total_paid,
    )


def calculate_settlement(total_paid: Decimal, amount: Decimal, fee_bps: int) -> Settlement:
    """
    Split total_paid between the lender and the platform.

    The fee is charged on realized interest only. When installment rounding
    leaves total_paid below the principal there is no interest to charge,
    so the fee is zero and the lender receives everything paid. This is a
    deliberate policy: the plain formula (total_paid - amount) * fee_bps // 10000
    would yield a negative fee there, and an unsigned implementation of it
    would fail outright.

    Example:
        total_paid=1100, amount=1000, fee_bps=200
        platform_fee  = 100 * 200 // 10000 = 2
        lender_amount = 1100 - 2 = 1098
    """
    interest = total_paid - amount
    platform_fee = max(interest, ZERO) * Decimal(fee_bps) // BPS_DENOMINATOR
    return Settlement(
        interest=interest,
        platform_fee=platform_fee,
        lender_amount=total_paid - platform_fee,
    )


def validate_fee(fee_bps: int) -> int:
    """
    Raises:
        FeeAboveCap: fee_bps above MAX_FEE_BPS
        ValueError: fee_bps negative or not an int
    """
    if isinstance(fee_bps, bool) or not isinstance(fee_bps, int):
        raise ValueError(f"fee_bps must be int, got {type(fee_bps).__name__}")
    if fee_bps < 0:
        raise ValueError(f"fee_bps cannot be negative, got {fee_bps}")
    if fee_bps > MAX_FEE_BPS:
        raise FeeAboveCap(f"fee {fee_bps} bps exceeds cap of {MAX_FEE_BPS} bps")
    return fee_bps


# ============================================================================
# STATE TRANSITIONS
# ============================================================================

def open_loan(
    loan_id: int,
    lender: str,
    borrower: str,
    amount: Any,
    interest: Any,
    installments: int,
    start_time: datetime,
) -> Loan:
    """
    Build a new active loan with no payments made.

    Raises:
        InvalidLoanTerms: non-positive amount or installments, negative
            interest, a total at or above MAX_AMOUNT, or an installment
            amount that rounds down to zero
    """
    amount = to_amount(amount, "amount")
    interest = to_amount(interest, "interest")
    if isinstance(installments, bool) or not isinstance(installments, int):
        raise InvalidLoanTerms(f"installments must be int, got {type(installments).__name__}")
    if amount <= ZERO:
        raise InvalidLoanTerms(f"amount must be positive, got {amount}")
    if interest < ZERO:
        raise InvalidLoanTerms(f"interest cannot be negative, got {interest}")

    total_to_pay = amount + interest
    if total_to_pay >= MAX_AMOUNT:
        raise InvalidLoanTerms(f"total to pay out of range: {total_to_pay}")
    installment_amount = calculate_installment_amount(total_to_pay, installments)
    if installment_amount <= ZERO:
        raise InvalidLoanTerms(
            f"{installments} installments of {total_to_pay} round down to zero"
        )

    return Loan(
        loan_id=loan_id,
        lender=lender,
        borrower=borrower,
        amount=amount,
        total_to_pay=total_to_pay,
        total_paid=ZERO,
        start_time=start_time,
        installments=installments,
        installment_amount=installment_amount,
        installments_paid=0,
        active=True,
    )


def _require_active_borrower(loan: Loan, caller: str) -> None:
    if not loan.active:
        raise LoanNotActive(f"loan {loan.loan_id} is not active")
    if caller != loan.borrower:
        raise NotBorrower(f"{caller} is not the borrower of loan {loan.loan_id}")


def validate_installment(loan: Loan, caller: str, value: Decimal) -> None:
    """
    Check an installment payment, in order: active, borrower, installments
    remaining, exact amount.
    """
    _require_active_borrower(loan, caller)
    if loan.installments_paid >= loan.installments:
        raise InstallmentsComplete(f"loan {loan.loan_id} has no installments left")
    if value != loan.installment_amount:
        raise PaymentMismatch(
            f"installment for loan {loan.loan_id} is {loan.installment_amount}, got {value}"
        )


def validate_early_payoff(loan: Loan, caller: str, value: Decimal, quote: EarlyPayoffQuote) -> None:
    _require_active_borrower(loan, caller)
    if quote.final_payment <= ZERO:
        raise NothingOwed(
            f"loan {loan.loan_id} already covered: paid {loan.total_paid}, "
            f"prorated total {quote.real_total}"
        )
    if value != quote.final_payment:
        raise PaymentMismatch(
            f"early payoff for loan {loan.loan_id} is {quote.final_payment}, got {value}"
        )


def apply_installment(loan: Loan) -> Loan:
    return replace(
        loan,
        total_paid=loan.total_paid + loan.installment_amount,
        installments_paid=loan.installments_paid + 1,
    )


def apply_early_payoff(loan: Loan, quote: EarlyPayoffQuote) -> Loan:
    return replace(
        loan,
        total_paid=quote.real_total,
        installments_paid=loan.installments,
    )


def is_fully_repaid(loan: Loan) -> bool:
    return loan.installments_paid >= loan.installments


def settle_loan(loan: Loan, fee_bps: int, now: datetime) -> Tuple[Loan, Settlement]:
    """
    Close an active loan and compute the fee split.

    Raises:
        LoanNotActive: the loan was already closed
    """
    if not loan.active:
        raise LoanNotActive(f"loan {loan.loan_id} is already completed")
    settlement = calculate_settlement(loan.total_paid, loan.amount, fee_bps)
    closed = replace(
        loan,
        active=False,
        platform_fee=settlement.platform_fee,
        lender_amount=settlement.lender_amount,
        completed_at=now,
    )
    return closed, settlement


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def to_state_dict(loan: Loan) -> Dict[str, Any]:
    """Convert a Loan to the state dict stored on its ledger unit."""
    return {
        'loan_id': loan.loan_id,
        'lender': loan.lender,
        'borrower': loan.borrower,
        'amount': loan.amount,
        'total_to_pay': loan.total_to_pay,
        'total_paid': loan.total_paid,
        'start_time': loan.start_time,
        'installments': loan.installments,
        'installment_amount': loan.installment_amount,
        'installments_paid': loan.installments_paid,
        'active': loan.active,
        'platform_fee': loan.platform_fee,
        'lender_amount': loan.lender_amount,
        'completed_at': loan.completed_at,
    }


def from_state_dict(raw: Dict[str, Any]) -> Loan:
    return Loan(
        loan_id=raw['loan_id'],
        lender=raw['lender'],
        borrower=raw['borrower'],
        amount=raw['amount'],
        total_to_pay=raw['total_to_pay'],
        total_paid=raw['total_paid'],
        start_time=raw['start_time'],
        installments=raw['installments'],
        installment_amount=raw['installment_amount'],
        installments_paid=raw['installments_paid'],
        active=raw['active'],
        platform_fee=raw.get('platform_fee', ZERO),
        lender_amount=raw.get('lender_amount', ZERO),
        completed_at=raw.get('completed_at'),
    )


def load_loan(view: LedgerView, loan_id: int) -> Loan:
    """
    Load a loan from ledger state.

    Returns Loan.empty(loan_id) when no loan unit exists for the id.
    """
    symbol = loan_symbol(loan_id)
    if not view.has_unit(symbol):
        return Loan.empty(loan_id)
    return from_state_dict(view.get_unit_state(symbol))


def create_loan_unit(loan: Loan) -> Unit:
    """
    Ledger unit carrying a loan's state.

    Loan units hold no balances (max_balance zero); they exist only to keep
    the loan record under the ledger's atomic state changes.
    """
    return Unit(
        symbol=loan.symbol,
        name=f"P2P Loan #{loan.loan_id}: {loan.lender} -> {loan.borrower}",
        unit_type=UNIT_TYPE_LOAN,
        min_balance=ZERO,
        max_balance=ZERO,
        _frozen_state=_freeze_state(to_state_dict(loan)),
    )


def loan_state_change(old: Loan, new: Loan) -> UnitStateChange:
    return UnitStateChange(unit=new.symbol, old_state=to_state_dict(old), new_state=to_state_dict(new))
