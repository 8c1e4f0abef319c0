"""
certificate.py - Loan certificates (the Certificate Issuer collaborator)

Every originated loan gets one non-fungible certificate delivered to the
lender. The certificate is its own unit (CERT_<loan_id>) with a maximum
balance of one, created by the origination transaction itself. The engine
does not read anything back from it.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from ..core import (
    Move, Unit, SYSTEM_WALLET, UNIT_TYPE_CERTIFICATE, CERTIFICATE_URI_TEMPLATE, ZERO,
    _freeze_state,
)

CERTIFICATE_PREFIX = "CERT_"


def certificate_symbol(loan_id: int) -> str:
    return f"{CERTIFICATE_PREFIX}{loan_id}"


def create_certificate_unit(
    loan_id: int,
    holder: str,
    metadata_uri: str,
    issued_at: Optional[datetime] = None,
) -> Unit:
    """
    Create the certificate unit for a loan.

    Raises:
        ValueError: loan_id is not positive, or holder/metadata_uri is empty
    """
    if loan_id < 1:
        raise ValueError(f"loan_id must be positive, got {loan_id}")
    if not holder or not holder.strip():
        raise ValueError("holder cannot be empty")
    if not metadata_uri or not metadata_uri.strip():
        raise ValueError("metadata_uri cannot be empty")

    return Unit(
        symbol=certificate_symbol(loan_id),
        name=f"Loan Certificate #{loan_id}",
        unit_type=UNIT_TYPE_CERTIFICATE,
        min_balance=ZERO,
        max_balance=Decimal("1"),
        _frozen_state=_freeze_state({
            'loan_id': loan_id,
            'metadata_uri': metadata_uri,
            'original_holder': holder,
            'issued_at': issued_at,
        }),
    )


class CertificateIssuer:
    """Issues one certificate per loan, addressed by a metadata URI template."""

    def __init__(self, uri_template: str = CERTIFICATE_URI_TEMPLATE):
        self.uri_template = uri_template

    def metadata_uri(self, loan_id: int) -> str:
        return self.uri_template.format(loan_id=loan_id)

    def mint(
        self,
        to: str,
        loan_id: int,
        metadata_uri: Optional[str] = None,
        issued_at: Optional[datetime] = None,
    ) -> Tuple[Unit, Move]:
        """Return the certificate unit to create and the move delivering it to `to`."""
        unit = create_certificate_unit(
            loan_id, to, metadata_uri or self.metadata_uri(loan_id), issued_at
        )
        move = Move(Decimal("1"), unit.symbol, SYSTEM_WALLET, to, f"certificate_{loan_id}")
        return unit, move
