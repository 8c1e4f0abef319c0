"""
lending - Peer-to-peer lending ledger

Loans between registered lenders and borrowers, recorded on an in-memory
double-entry ledger. Each lending operation is one atomic transaction.

Usage:
    from lending import LendingEngine, create_lending_ledger

    ledger = create_lending_ledger(initial_time=datetime(2025, 1, 1))
    engine = LendingEngine(ledger, owner="operator")
    engine.fund_pool(1_000_000)

    engine.register_lender("alice")
    engine.register_borrower("bob")
    engine.credit.issue("alice", 5000)

    loan_id = engine.create_loan("operator", "alice", "bob", 1000, 100, 5)
    engine.native.fund("bob", 1100)
    engine.pay_installment("bob", loan_id, 220)

    ledger.advance_time(datetime(2025, 1, 11))
    quote = engine.quote_early_payoff(loan_id)
    engine.pay_early("bob", loan_id, quote.final_payment)
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    ErrorKind,
    to_amount,
    SYSTEM_WALLET,
    POOL_WALLET,
    CREDIT_SYMBOL,
    NATIVE_SYMBOL,
    UNIT_TYPE_CREDIT,
    UNIT_TYPE_NATIVE,
    UNIT_TYPE_LOAN,
    UNIT_TYPE_CERTIFICATE,
    DEFAULT_FEE_BPS,
    MAX_FEE_BPS,
    EARLY_PAYOFF_CAP_DAYS,
    MAX_AMOUNT,
    CERTIFICATE_URI_TEMPLATE,
)

# Errors
from .core import (
    LedgerError,
    UnitNotRegistered,
    WalletNotRegistered,
    AuthorizationError,
    NotOwner,
    NotBorrower,
    PreconditionError,
    NotRegistered,
    InsufficientBalance,
    LoanNotActive,
    InstallmentsComplete,
    PaymentMismatch,
    FeeAboveCap,
    NothingOwed,
    InvalidLoanTerms,
    TransferError,
    ReentrancyError,
)

# Ledger
from .ledger import Ledger

# Notifications
from .events import (
    Notification,
    EventLog,
    LENDER_REGISTERED,
    BORROWER_REGISTERED,
    LOAN_CREATED,
    PAYMENT_MADE,
    LOAN_COMPLETED,
    EARLY_PAYMENT_MADE,
)

# Guard and registry
from .guard import ReentrancyGuard
from .registry import ParticipantRegistry

# Units
from .units import (
    credit_token,
    CreditToken,
    Receiver,
    native_currency,
    NativeCurrency,
    certificate_symbol,
    create_certificate_unit,
    CertificateIssuer,
    loan_symbol,
    Loan,
    EarlyPayoffQuote,
    Settlement,
    calculate_installment_amount,
    calculate_days_used,
    calculate_daily_interest,
    calculate_early_payoff,
    calculate_settlement,
    validate_fee,
    open_loan,
    settle_loan,
    load_loan,
    create_loan_unit,
)

# Engine
from .engine import LendingEngine, create_lending_ledger

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction',
    'Unit', 'UnitStateChange', 'ExecuteResult', 'ErrorKind', 'to_amount',
    'SYSTEM_WALLET', 'POOL_WALLET', 'CREDIT_SYMBOL', 'NATIVE_SYMBOL',
    'UNIT_TYPE_CREDIT', 'UNIT_TYPE_NATIVE', 'UNIT_TYPE_LOAN', 'UNIT_TYPE_CERTIFICATE',
    'DEFAULT_FEE_BPS', 'MAX_FEE_BPS', 'EARLY_PAYOFF_CAP_DAYS', 'MAX_AMOUNT', 'CERTIFICATE_URI_TEMPLATE',
    # Errors
    'LedgerError', 'UnitNotRegistered', 'WalletNotRegistered',
    'AuthorizationError', 'NotOwner', 'NotBorrower',
    'PreconditionError', 'NotRegistered', 'InsufficientBalance', 'LoanNotActive',
    'InstallmentsComplete', 'PaymentMismatch', 'FeeAboveCap', 'NothingOwed',
    'InvalidLoanTerms', 'TransferError', 'ReentrancyError',
    # Ledger
    'Ledger',
    # Notifications
    'Notification', 'EventLog',
    'LENDER_REGISTERED', 'BORROWER_REGISTERED', 'LOAN_CREATED',
    'PAYMENT_MADE', 'LOAN_COMPLETED', 'EARLY_PAYMENT_MADE',
    # Guard and registry
    'ReentrancyGuard', 'ParticipantRegistry',
    # Units
    'credit_token', 'CreditToken', 'Receiver', 'native_currency', 'NativeCurrency',
    'certificate_symbol', 'create_certificate_unit', 'CertificateIssuer',
    'loan_symbol', 'Loan', 'EarlyPayoffQuote', 'Settlement',
    'calculate_installment_amount', 'calculate_days_used', 'calculate_daily_interest',
    'calculate_early_payoff', 'calculate_settlement', 'validate_fee',
    'open_loan', 'settle_loan', 'load_loan', 'create_loan_unit',
    # Engine
    'LendingEngine', 'create_lending_ledger',
]
