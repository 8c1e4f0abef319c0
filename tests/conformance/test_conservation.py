"""
Conservation Law Conformance Tests

INVARIANT: For all units u, at all times t:
    Σ_{w ∈ wallets} balance(w, u, t) = 0

Credit and native currency enter and leave through SYSTEM_WALLET, and
certificates are delivered from it, so every unit sums to zero across all
wallets no matter which lending operations ran or failed.

INVARIANT: For every completed loan:
    lender_amount + platform_fee = total_paid

INVARIANT: A lender's credit equals what was issued to it, minus the
principal of its loans, plus lender_amount of its completed loans.

These tests use property-based testing to verify the invariants hold for
arbitrary sequences of lending operations, failing ones included.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from decimal import Decimal
from datetime import timedelta

from lending import LendingEngine, LedgerError, POOL_WALLET

from tests.conftest import OWNER, make_engine


PARTICIPANTS = ["alice", "bob", "carol"]
ISSUED = 20_000
FUNDED = 20_000
POOL = 1_000_000


# =============================================================================
# STRATEGIES FOR PROPERTY-BASED TESTING
# =============================================================================

participant = st.sampled_from(PARTICIPANTS)
loan_ref = st.integers(min_value=1, max_value=6)

create_op = st.tuples(
    st.just("create"), participant, participant,
    st.integers(min_value=1, max_value=6000),
    st.integers(min_value=0, max_value=2000),
    st.integers(min_value=0, max_value=12),
)
pay_op = st.tuples(st.just("pay"), loan_ref, participant, st.booleans())
early_op = st.tuples(st.just("early"), loan_ref, participant)
advance_op = st.tuples(st.just("advance"), st.integers(min_value=0, max_value=20))
fee_op = st.tuples(st.just("fee"), st.integers(min_value=0, max_value=1200))

lending_operation = st.one_of(create_op, pay_op, pay_op, early_op, advance_op, fee_op)
operation_sequence = st.lists(lending_operation, min_size=1, max_size=40)


def onboarded_engine() -> LendingEngine:
    """Engine where every participant is both lender and borrower."""
    engine = make_engine(pool_funds=POOL)
    for name in PARTICIPANTS:
        engine.register_lender(name)
        engine.register_borrower(name)
        engine.credit.issue(name, ISSUED)
        engine.native.fund(name, FUNDED)
    return engine


def apply_operation(engine: LendingEngine, op: tuple) -> bool:
    """Run one operation; lending errors are expected outcomes. Returns success."""
    kind = op[0]
    try:
        if kind == "create":
            _, lender, borrower, amount, interest, installments = op
            engine.create_loan(OWNER, lender, borrower, amount, interest, installments)
        elif kind == "pay":
            _, loan_id, payer, exact = op
            due = engine.get_loan(loan_id).installment_amount
            engine.pay_installment(payer, loan_id, due if exact else due + 1)
        elif kind == "early":
            _, loan_id, payer = op
            quote = engine.quote_early_payoff(loan_id)
            engine.pay_early(payer, loan_id, quote.final_payment)
        elif kind == "advance":
            ledger = engine.ledger
            ledger.advance_time(ledger.current_time + timedelta(days=op[1]))
        elif kind == "fee":
            engine.set_fee(OWNER, op[1])
    except LedgerError:
        return False
    return True


def run_operations(engine: LendingEngine, ops) -> list:
    return [apply_operation(engine, op) for op in ops]


# =============================================================================
# PROPERTIES
# =============================================================================

class TestConservationProperties:

    @given(operation_sequence)
    @settings(max_examples=75, deadline=None)
    def test_every_unit_sums_to_zero(self, ops):
        engine = onboarded_engine()
        for op in ops:
            apply_operation(engine, op)
            result = engine.ledger.verify_double_entry()
            assert result['valid'], result['discrepancies']

    @given(operation_sequence)
    @settings(max_examples=75, deadline=None)
    def test_native_stays_with_participants_and_pool(self, ops):
        engine = onboarded_engine()
        run_operations(engine, ops)
        held = sum(engine.native.balance_of(name) for name in PARTICIPANTS + [POOL_WALLET, OWNER])
        assert held == Decimal(POOL + FUNDED * len(PARTICIPANTS))

    @given(operation_sequence)
    @settings(max_examples=75, deadline=None)
    def test_lender_credit_accounting(self, ops):
        engine = onboarded_engine()
        run_operations(engine, ops)

        loans = engine.list_loans()
        for name in PARTICIPANTS:
            lent = sum((loan.amount for loan in loans if loan.lender == name), Decimal("0"))
            returned = sum(
                (loan.lender_amount for loan in loans if loan.lender == name and not loan.active),
                Decimal("0"),
            )
            assert engine.balance_of(name) == Decimal(ISSUED) - lent + returned

    @given(operation_sequence)
    @settings(max_examples=75, deadline=None)
    def test_loan_records_consistent(self, ops):
        engine = onboarded_engine()
        run_operations(engine, ops)

        loans = engine.list_loans()
        assert [loan.loan_id for loan in loans] == list(range(1, engine.loan_count + 1))
        for loan in loans:
            assert 0 <= loan.installments_paid <= loan.installments
            assert engine.ledger.get_balance(loan.lender, f"CERT_{loan.loan_id}") == Decimal("1")
            if loan.active:
                assert loan.total_paid == loan.installment_amount * loan.installments_paid
                assert loan.platform_fee == Decimal("0")
            else:
                assert loan.installments_paid == loan.installments
                assert loan.lender_amount + loan.platform_fee == loan.total_paid
                assert loan.platform_fee >= 0
                assert loan.completed_at is not None


class TestConservationExamples:

    def test_full_lifecycle_conserves(self):
        engine = onboarded_engine()
        ops = [
            ("create", "alice", "bob", 1000, 100, 5),
            ("pay", 1, "bob", True),
            ("advance", 5),
            ("early", 1, "bob"),
            ("create", "carol", "carol", 3000, 300, 3),
            ("pay", 2, "carol", False),
        ]
        assert run_operations(engine, ops) == [True, True, True, True, True, False]
        assert engine.ledger.verify_double_entry()['valid']
        assert engine.platform_fees_collected() == Decimal("0")

    @pytest.mark.parametrize("fee_bps", [0, 200, 1000])
    def test_fee_never_minted(self, fee_bps):
        engine = onboarded_engine()
        engine.set_fee(OWNER, fee_bps)
        engine.create_loan(OWNER, "alice", "bob", 10_000, 5_000, 5)
        for _ in range(5):
            engine.pay_installment("bob", 1, 3000)
        fee = Decimal(5000 * fee_bps // 10000)
        assert engine.platform_fees_collected() == fee
        assert engine.credit.total_supply() == Decimal(ISSUED * 3) - Decimal(10_000) + Decimal(15_000) - fee
