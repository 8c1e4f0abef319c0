"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending book.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Double-entry and loan accounting invariants
2. atomicity.py - All-or-nothing lending operations
3. idempotency.py - Duplicate execution handling
4. determinism.py - Reproducible behavior
5. temporal.py - Early-payoff proration and time ordering

These tests use hypothesis for property-based testing.
"""
