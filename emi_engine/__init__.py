"""
EMI Engine

Loan amortization and lifecycle engine: EMI schedule generation, installment
payment recording, part-prepayments, foreclosure and refinance comparison,
with integer minor-unit money math and a hash-chained event ledger.
"""

__version__ = "1.0.0"
