"""
conftest.py - Shared pytest fixtures for lending tests

Provides common fixtures used across unit, functional and conformance tests:
- Basic ledgers (empty, with credit and native units)
- Lending engines (plain, with registered and funded participants)
- An active loan ready for repayment
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from lending import (
    Ledger, LendingEngine, create_lending_ledger,
    SYSTEM_WALLET, POOL_WALLET,
)

from tests.fake_view import FakeView


T0 = datetime(2025, 1, 1)

OWNER = "operator"
LENDER = "alice"
BORROWER = "bob"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_engine(fee_bps: int = 200, pool_funds: int = 1_000_000, verbose: bool = False):
    """Engine on a fresh lending ledger with a funded pool."""
    ledger = create_lending_ledger("test", T0, verbose=verbose, test_mode=True)
    engine = LendingEngine(ledger, owner=OWNER, fee_bps=fee_bps)
    if pool_funds:
        engine.fund_pool(pool_funds)
    return engine


def onboard(engine: LendingEngine, lender: str = LENDER, borrower: str = BORROWER,
            credit: int = 10_000, native: int = 10_000) -> None:
    """Register a lender/borrower pair and fund them."""
    engine.register_lender(lender)
    engine.register_borrower(borrower)
    if credit:
        engine.credit.issue(lender, credit)
    if native:
        engine.native.fund(borrower, native)


def snapshot(ledger: Ledger) -> dict:
    """Balances and unit states, for before/after comparisons."""
    balances = {
        (wallet, symbol): ledger.get_balance(wallet, symbol)
        for wallet in sorted(ledger.list_wallets())
        for symbol in sorted(ledger.units)
    }
    states = {symbol: ledger.get_unit_state(symbol) for symbol in sorted(ledger.units)}
    return {"balances": balances, "states": states, "log": len(ledger.transaction_log)}


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", T0, verbose=False, test_mode=True)


@pytest.fixture
def lending_ledger():
    """Ledger with credit, native and the pool wallet."""
    return create_lending_ledger("test", T0, verbose=False, test_mode=True)


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """LendingEngine with a funded pool and no participants."""
    return make_engine()


@pytest.fixture
def funded_engine():
    """LendingEngine with alice (lender, 10000 credit) and bob (borrower, 10000 native)."""
    engine = make_engine()
    onboard(engine)
    return engine


@pytest.fixture
def active_loan(funded_engine):
    """1000 principal + 100 interest over 5 installments, created at T0."""
    loan_id = funded_engine.create_loan(OWNER, LENDER, BORROWER, 1000, 100, 5)
    return funded_engine, loan_id


# =============================================================================
# FAKE VIEW FIXTURES
# =============================================================================

@pytest.fixture
def loan_view():
    """FakeView holding one active loan, ten days after its start."""
    return FakeView(
        balances={
            LENDER: {"CREDIT": Decimal("9000")},
            BORROWER: {"NATIVE": Decimal("1000")},
            POOL_WALLET: {"NATIVE": Decimal("999000")},
            SYSTEM_WALLET: {"CREDIT": Decimal("-9000"), "NATIVE": Decimal("-1000000")},
        },
        states={
            "LOAN_1": {
                'loan_id': 1,
                'lender': LENDER,
                'borrower': BORROWER,
                'amount': Decimal("1000"),
                'total_to_pay': Decimal("1100"),
                'total_paid': Decimal("0"),
                'start_time': T0,
                'installments': 5,
                'installment_amount': Decimal("220"),
                'installments_paid': 0,
                'active': True,
                'platform_fee': Decimal("0"),
                'lender_amount': Decimal("0"),
                'completed_at': None,
            }
        },
        time=T0 + timedelta(days=10),
    )
