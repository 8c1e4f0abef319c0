"""
Core types and pure functions for the lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError and the lending error taxonomy
4. Type aliases: Positions, BalanceMap, UnitState
5. Configuration constants: fee limits, proration cap, reserved wallets

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_DOWN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Amounts are whole base units held in Decimal. Precision 50 keeps every
# intermediate (amount + interest, interest * fee_bps) exact for amounts
# below MAX_AMOUNT.
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption (mint/burn counterparty).
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Wallet holding the native currency the lending book pays out of and into.
POOL_WALLET = "lending_pool"

CREDIT_SYMBOL = "CREDIT"
NATIVE_SYMBOL = "NATIVE"

UNIT_TYPE_CREDIT = "CREDIT"
UNIT_TYPE_NATIVE = "NATIVE"
UNIT_TYPE_LOAN = "P2P_LOAN"
UNIT_TYPE_CERTIFICATE = "LOAN_CERTIFICATE"

# Fee parameter, in basis points of the realized interest.
BPS_DENOMINATOR = Decimal("10000")
DEFAULT_FEE_BPS = 200
MAX_FEE_BPS = 1000

# Early payoff spreads the full interest over this many days.
EARLY_PAYOFF_CAP_DAYS = 30

# Exclusive upper bound on any amount. Leaves headroom under the context
# precision for sums and fee products.
MAX_AMOUNT = Decimal(10) ** 40

CERTIFICATE_URI_TEMPLATE = "ipfs://p2p-loans/{loan_id}.json"

ZERO = Decimal("0")


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# Internal state for a unit (loan terms, repayment progress, certificate data).
UnitState = Dict[str, Any]


def to_amount(value: Any, name: str = "amount") -> Decimal:
    """
    Convert an int or Decimal to a whole-unit Decimal amount.

    Raises:
        ValueError: if the value is a float, non-finite, has a fractional part,
            or its magnitude reaches MAX_AMOUNT.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"{name} must be int or Decimal, got {type(value).__name__}")
    if isinstance(value, int):
        value = Decimal(value)
    elif not isinstance(value, Decimal):
        raise ValueError(f"{name} must be int or Decimal, got {type(value).__name__}")
    if not value.is_finite():
        raise ValueError(f"{name} must be finite, got {value}")
    if value != value.to_integral_value(rounding=ROUND_DOWN):
        raise ValueError(f"{name} must be a whole number of base units, got {value}")
    if abs(value) >= MAX_AMOUNT:
        raise ValueError(f"{name} out of range: {value}")
    return value


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Loan calculations and transaction builders take a LedgerView so that
    they can read balances, unit state and the clock but never mutate them.
    The Ledger class implements this protocol; tests use FakeView.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Return the balance of a unit in a wallet (Decimal("0") if none)."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def has_unit(self, symbol: str) -> bool:
        """Return True if a unit with this symbol is registered."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: Transaction ID was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation (balance limits, stale state,
              unregistered wallets or units).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Borrower payment
    ADMIN = "admin"                       # Owner-only operation
    SYSTEM = "system"                     # Issuance and funding


class ErrorKind(Enum):
    """Error taxonomy carried by every lending error."""
    AUTHORIZATION = "authorization"
    PRECONDITION = "precondition"
    TRANSFER = "transfer"
    REENTRANCY = "reentrancy"
    LEDGER = "ledger"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger and lending errors."""
    kind = ErrorKind.LEDGER


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class AuthorizationError(LedgerError):
    """The caller is not allowed to perform the operation."""
    kind = ErrorKind.AUTHORIZATION


class NotOwner(AuthorizationError):
    pass


class NotBorrower(AuthorizationError):
    pass


class PreconditionError(LedgerError):
    """The operation's preconditions do not hold."""
    kind = ErrorKind.PRECONDITION


class NotRegistered(PreconditionError):
    pass


class InsufficientBalance(PreconditionError):
    pass


class LoanNotActive(PreconditionError):
    pass


class InstallmentsComplete(PreconditionError):
    pass


class PaymentMismatch(PreconditionError):
    """Payment value differs from the exact amount due."""
    pass


class FeeAboveCap(PreconditionError):
    pass


class NothingOwed(PreconditionError):
    """The prorated early-payoff total is already covered."""
    pass


class InvalidLoanTerms(PreconditionError):
    pass


class TransferError(LedgerError):
    """A native-currency push payment or ledger transfer failed."""
    kind = ErrorKind.TRANSFER


class ReentrancyError(LedgerError):
    """A protected operation was entered while another one is in flight."""
    kind = ErrorKind.REENTRANCY


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Who triggered it (caller address)
        unit_symbol: Loan unit the transaction belongs to (if applicable)
        event_type: Lending operation (e.g., "CREATE", "INSTALLMENT", "EARLY_PAYOFF")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Record of a unit state change, with complete before/after snapshots.

    Attributes:
        unit: Symbol of the unit whose state changed
        old_state: Complete state before the change (dict or None for new units)
        new_state: Complete state after the change (dict)
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old, new)} for fields that differ."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            if old.get(key) != new.get(key):
                changes[key] = (old.get(key), new.get(key))
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (positive Decimal).
        unit_symbol: The unit being transferred (e.g., "CREDIT", "NATIVE").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if not self.quantity.is_finite():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if self.quantity <= ZERO:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """Canonical string for a Decimal: Decimal("1.0") and Decimal("1") both give "1"."""
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Independent of dict insertion order and Decimal representation.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        return f"[{','.join(_canonicalize(item) for item in value)}]"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = ()
) -> str:
    """
    Deterministic content hash of a transaction's intent.

    Same moves, state changes, origin and created units always give the same
    intent_id. Timestamps are excluded. Used for idempotency checking.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (_normalize_decimal(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        content_parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for unit in sorted(units_to_create, key=lambda u: u.symbol):
        content_parts.append(f"unit_create:{unit.symbol}|{unit.unit_type}|{_canonicalize(unit.state)}")

    for m in sorted_moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(state_changes, key=lambda s: s.unit):
        content_parts.append(
            f"state_change:{sc.unit}|{_canonicalize(sc.old_state)}|{_canonicalize(sc.new_state)}"
        )

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction request before execution - represents INTENT.

    Built by the loan transaction builders and submitted to Ledger.execute().

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes (old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When this pending transaction was created
        units_to_create: Units (loans, certificates) registered by this transaction
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.units_to_create
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if there are no moves, no state changes and no units to create."""
        return not self.moves and not self.state_changes and not self.units_to_create

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and state changes.

    Args:
        view: Read-only ledger view (provides current_time)
        moves: Moves to include in the transaction
        state_changes: Optional unit state changes
        origin: Transaction origin (defaults to a SYSTEM origin)
        units_to_create: Units to register before the moves execute

    Returns:
        A PendingTransaction ready for execution
    """
    if origin is None:
        origin = TransactionOrigin(origin_type=OriginType.SYSTEM, source_id=SYSTEM_WALLET)

    # Deep copy state changes so callers cannot mutate them afterwards
    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            UnitStateChange(
                unit=sc.unit,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        units_to_create=units_to_create or (),
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger
        units_to_create: Units registered by this transaction
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes and not self.units_to_create:
            raise ValueError("Transaction must have moves, state_changes, or units_to_create")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        lines = [
            f"Transaction {self.exec_id} [{self.origin}]",
            f"  intent_id={self.intent_id} seq={self.sequence_number} at {self.execution_time}",
        ]
        for unit in self.units_to_create:
            lines.append(f"  + unit {unit.symbol} ({unit.name})")
        for move in self.moves:
            lines.append(f"  {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}")
        for sc in self.state_changes:
            for field_name, (old_val, new_val) in sorted(sc.changed_fields().items()):
                lines.append(f"  [{sc.unit}] {field_name}: {old_val!r} → {new_val!r}")
        return "\n".join(lines)


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to a tuple of (key, value) pairs sorted by key."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit in the ledger: a currency, a loan or a certificate.

    Attributes:
        symbol: Short identifier for the unit (e.g., "CREDIT", "LOAN_1").
        name: Human-readable name for the unit.
        unit_type: Category of the unit (CREDIT, NATIVE, P2P_LOAN, LOAN_CERTIFICATE).
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any wallet.
        _frozen_state: Internal frozen state representation.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = ZERO
    max_balance: Decimal = Decimal("Infinity")
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """The unit's state as a new dict."""
        return _thaw_state(self._frozen_state)
