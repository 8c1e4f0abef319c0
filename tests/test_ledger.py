"""
test_ledger.py - Unit tests for the Ledger class

Tests:
- Registration (wallets, units)
- Balance and position queries
- Time management
- Transaction execution (moves, state changes, units to create)
- Validation and rejection (limits, stale state, registration)
- Idempotency and double-entry verification
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from lending import (
    Ledger, Move, Unit, UnitStateChange, ExecuteResult,
    LedgerError, UnitNotRegistered, WalletNotRegistered,
    build_transaction, credit_token, native_currency,
    SYSTEM_WALLET, POOL_WALLET, UNIT_TYPE_CREDIT,
)

from tests.conftest import T0


def _mint(ledger, to, amount, contract_id="mint"):
    return ledger.execute(build_transaction(ledger, [
        Move(Decimal(amount), "CREDIT", SYSTEM_WALLET, to, contract_id)
    ]))


@pytest.fixture
def credit_ledger():
    ledger = Ledger("test", T0, verbose=False)
    ledger.register_unit(credit_token())
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger


class TestLedgerRegistration:

    def test_create_ledger(self):
        ledger = Ledger("test", verbose=False)
        assert ledger.name == "test"
        assert ledger.current_time == datetime(1970, 1, 1)
        assert SYSTEM_WALLET in ledger.list_wallets()

    def test_register_wallet(self, empty_ledger):
        assert empty_ledger.register_wallet("alice") == "alice"
        assert empty_ledger.is_registered("alice")

    def test_register_duplicate_wallet_raises(self, empty_ledger):
        empty_ledger.register_wallet("alice")
        with pytest.raises(ValueError, match="already registered"):
            empty_ledger.register_wallet("alice")

    def test_register_empty_wallet_raises(self, empty_ledger):
        with pytest.raises(ValueError, match="cannot be empty"):
            empty_ledger.register_wallet("  ")

    def test_ensure_wallet_is_idempotent(self, empty_ledger):
        empty_ledger.ensure_wallet("alice")
        empty_ledger.ensure_wallet("alice")
        assert empty_ledger.is_registered("alice")

    def test_register_unit(self, empty_ledger):
        empty_ledger.register_unit(credit_token())
        assert empty_ledger.has_unit("CREDIT")
        assert empty_ledger.get_unit("CREDIT").unit_type == UNIT_TYPE_CREDIT

    def test_register_unit_verbose(self, capsys):
        ledger = Ledger("loud", T0, verbose=True)
        capsys.readouterr()
        ledger.register_unit(credit_token())
        assert capsys.readouterr().out == "Registered: CREDIT (P2P Lending Credit) [CREDIT]\n"

    def test_register_duplicate_unit_raises(self, empty_ledger):
        empty_ledger.register_unit(credit_token())
        with pytest.raises(ValueError, match="already registered"):
            empty_ledger.register_unit(credit_token())

    def test_list_units_by_type(self, lending_ledger):
        assert lending_ledger.list_units() == ["CREDIT", "NATIVE"]
        assert lending_ledger.list_units(UNIT_TYPE_CREDIT) == ["CREDIT"]

    def test_lending_ledger_has_pool(self, lending_ledger):
        assert lending_ledger.is_registered(POOL_WALLET)


class TestLedgerQueries:

    def test_get_balance_default_zero(self, credit_ledger):
        assert credit_ledger.get_balance("alice", "CREDIT") == Decimal("0")

    def test_get_balance_unregistered_wallet_is_zero(self, credit_ledger):
        assert credit_ledger.get_balance("nobody", "CREDIT") == Decimal("0")

    def test_get_balance_unregistered_unit_raises(self, credit_ledger):
        with pytest.raises(UnitNotRegistered):
            credit_ledger.get_balance("alice", "GOLD")

    def test_get_unit_state_unregistered_raises(self, credit_ledger):
        with pytest.raises(UnitNotRegistered):
            credit_ledger.get_unit_state("LOAN_1")

    def test_get_wallet_balances_unregistered_raises(self, credit_ledger):
        with pytest.raises(WalletNotRegistered):
            credit_ledger.get_wallet_balances("nobody")

    def test_get_positions(self, credit_ledger):
        _mint(credit_ledger, "alice", "100")
        assert credit_ledger.get_positions("CREDIT") == {
            "alice": Decimal("100"),
            SYSTEM_WALLET: Decimal("-100"),
        }

    def test_total_supply_is_zero_after_issuance(self, credit_ledger):
        _mint(credit_ledger, "alice", "100")
        assert credit_ledger.total_supply("CREDIT") == Decimal("0")


class TestLedgerTime:

    def test_advance_time(self, credit_ledger):
        credit_ledger.advance_time(T0 + timedelta(days=1))
        assert credit_ledger.current_time == T0 + timedelta(days=1)

    def test_advance_time_backwards_raises(self, credit_ledger):
        with pytest.raises(ValueError, match="backwards"):
            credit_ledger.advance_time(T0 - timedelta(days=1))


class TestLedgerExecute:

    def test_execute_simple_transaction(self, credit_ledger):
        assert _mint(credit_ledger, "alice", "100") == ExecuteResult.APPLIED
        assert credit_ledger.get_balance("alice", "CREDIT") == Decimal("100")
        assert len(credit_ledger.transaction_log) == 1
        assert credit_ledger.next_sequence == 1

    def test_idempotency(self, credit_ledger):
        tx = build_transaction(credit_ledger, [
            Move(Decimal("100"), "CREDIT", SYSTEM_WALLET, "alice", "mint")
        ])
        assert credit_ledger.execute(tx) == ExecuteResult.APPLIED
        assert credit_ledger.execute(tx) == ExecuteResult.ALREADY_APPLIED
        assert credit_ledger.get_balance("alice", "CREDIT") == Decimal("100")

    def test_reject_below_min_balance(self, credit_ledger):
        tx = build_transaction(credit_ledger, [
            Move(Decimal("1"), "CREDIT", "alice", "bob", "overdraw")
        ])
        assert credit_ledger.execute(tx) == ExecuteResult.REJECTED
        assert "min" in credit_ledger.last_rejection
        assert credit_ledger.transaction_log == []

    def test_system_wallet_exempt_from_limits(self, credit_ledger):
        _mint(credit_ledger, "alice", "100")
        assert credit_ledger.get_balance(SYSTEM_WALLET, "CREDIT") == Decimal("-100")

    def test_reject_unregistered_wallet(self, credit_ledger):
        _mint(credit_ledger, "alice", "100")
        tx = build_transaction(credit_ledger, [
            Move(Decimal("1"), "CREDIT", "alice", "nobody", "pay")
        ])
        assert credit_ledger.execute(tx) == ExecuteResult.REJECTED
        assert credit_ledger.last_rejection == "wallet not registered: nobody"

    def test_reject_unregistered_unit(self, credit_ledger):
        tx = build_transaction(credit_ledger, [
            Move(Decimal("1"), "GOLD", SYSTEM_WALLET, "alice", "mint")
        ])
        assert credit_ledger.execute(tx) == ExecuteResult.REJECTED

    def test_reject_future_timestamp(self, credit_ledger):
        credit_ledger.advance_time(T0 + timedelta(days=2))
        tx = build_transaction(credit_ledger, [
            Move(Decimal("1"), "CREDIT", SYSTEM_WALLET, "alice", "mint")
        ])
        later = Ledger("other", T0, verbose=False)
        later.register_unit(credit_token())
        later.register_wallet("alice")
        assert later.execute(tx) == ExecuteResult.REJECTED
        assert later.last_rejection == "future timestamp"

    def test_rejection_is_atomic(self, credit_ledger):
        _mint(credit_ledger, "alice", "100")
        tx = build_transaction(credit_ledger, [
            Move(Decimal("60"), "CREDIT", "alice", "bob", "first"),
            Move(Decimal("60"), "CREDIT", "alice", "bob", "second"),
        ])
        assert credit_ledger.execute(tx) == ExecuteResult.REJECTED
        assert credit_ledger.get_balance("alice", "CREDIT") == Decimal("100")
        assert credit_ledger.get_balance("bob", "CREDIT") == Decimal("0")


class TestUnitsAndState:

    def _unit(self, symbol="LOAN_X", state=None):
        return Unit(
            symbol=symbol, name="state holder", unit_type="TEST",
            max_balance=Decimal("0"),
            _frozen_state=tuple(sorted((state or {"count": 0}).items())),
        )

    def test_units_to_create_are_registered(self, credit_ledger):
        tx = build_transaction(credit_ledger, [], units_to_create=(self._unit(),))
        assert credit_ledger.execute(tx) == ExecuteResult.APPLIED
        assert credit_ledger.get_unit_state("LOAN_X") == {"count": 0}

    def test_units_to_create_rolled_back_on_rejection(self, credit_ledger):
        tx = build_transaction(
            credit_ledger,
            [Move(Decimal("1"), "CREDIT", "alice", "bob", "overdraw")],
            units_to_create=(self._unit(),),
        )
        assert credit_ledger.execute(tx) == ExecuteResult.REJECTED
        assert not credit_ledger.has_unit("LOAN_X")

    def test_duplicate_unit_rejected(self, credit_ledger):
        credit_ledger.register_unit(self._unit())
        tx = build_transaction(credit_ledger, [], units_to_create=(self._unit(state={"count": 1}),))
        assert credit_ledger.execute(tx) == ExecuteResult.REJECTED
        assert credit_ledger.get_unit_state("LOAN_X") == {"count": 0}

    def test_state_change_applied(self, credit_ledger):
        credit_ledger.register_unit(self._unit())
        tx = build_transaction(credit_ledger, [], [
            UnitStateChange("LOAN_X", {"count": 0}, {"count": 1})
        ])
        assert credit_ledger.execute(tx) == ExecuteResult.APPLIED
        assert credit_ledger.get_unit_state("LOAN_X") == {"count": 1}

    def test_stale_state_change_rejected(self, credit_ledger):
        credit_ledger.register_unit(self._unit())
        tx = build_transaction(credit_ledger, [], [
            UnitStateChange("LOAN_X", {"count": 5}, {"count": 6})
        ])
        assert credit_ledger.execute(tx) == ExecuteResult.REJECTED
        assert credit_ledger.last_rejection == "stale state for LOAN_X"
        assert credit_ledger.get_unit_state("LOAN_X") == {"count": 0}

    def test_get_unit_state_returns_copy(self, credit_ledger):
        credit_ledger.register_unit(self._unit())
        credit_ledger.get_unit_state("LOAN_X")["count"] = 99
        assert credit_ledger.get_unit_state("LOAN_X") == {"count": 0}


class TestSetBalanceAndVerification:

    def test_set_balance_requires_test_mode(self, credit_ledger):
        with pytest.raises(LedgerError, match="disabled in production"):
            credit_ledger.set_balance("alice", "CREDIT", Decimal("5"))

    def test_set_balance_in_test_mode(self, empty_ledger):
        empty_ledger.register_unit(credit_token())
        empty_ledger.register_wallet("alice")
        empty_ledger.set_balance("alice", "CREDIT", Decimal("5"))
        assert empty_ledger.get_balance("alice", "CREDIT") == Decimal("5")

    def test_verify_double_entry_after_transfers(self, credit_ledger):
        _mint(credit_ledger, "alice", "100")
        credit_ledger.execute(build_transaction(credit_ledger, [
            Move(Decimal("40"), "CREDIT", "alice", "bob", "pay")
        ]))
        result = credit_ledger.verify_double_entry()
        assert result['valid']
        assert result['supplies'] == {"CREDIT": Decimal("0")}

    def test_verify_double_entry_detects_set_balance(self, empty_ledger):
        empty_ledger.register_unit(native_currency())
        empty_ledger.register_wallet("alice")
        empty_ledger.set_balance("alice", "NATIVE", Decimal("7"))
        result = empty_ledger.verify_double_entry()
        assert not result['valid']
        assert result['discrepancies'][0]['difference'] == Decimal("7")
        assert empty_ledger.verify_double_entry({"NATIVE": Decimal("7")})['valid']
