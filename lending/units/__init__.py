"""
Units module - The instruments the lending book is made of.

- Credit token (fungible, minted and burned through SYSTEM_WALLET)
- Native currency with receiver hooks on push payments
- Loan certificates (one per loan, max balance 1)
- P2P installment loans (state-only units carrying the loan record)

All unit factories and related functions are re-exported here for convenience.
"""

# Credit token
from .credit import (
    credit_token,
    CreditToken,
)

# Native currency
from .native import (
    Receiver,
    native_currency,
    NativeCurrency,
)

# Loan certificates
from .certificate import (
    CERTIFICATE_PREFIX,
    certificate_symbol,
    create_certificate_unit,
    CertificateIssuer,
)

# P2P loans
from .loan import (
    LOAN_PREFIX,
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
    validate_installment,
    validate_early_payoff,
    apply_installment,
    apply_early_payoff,
    is_fully_repaid,
    settle_loan,
    to_state_dict,
    from_state_dict,
    load_loan,
    create_loan_unit,
    loan_state_change,
)
