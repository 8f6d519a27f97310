"""Exception hierarchy for the EMI engine.

Every error derives from ``ValueError`` so callers that already guard loan
operations with ``except ValueError`` keep working.
"""


class EmiEngineError(ValueError):
    """Base exception for all engine errors."""

    retryable = False


class InvalidLoanTerms(EmiEngineError):
    """Raised when principal, rate, tenure or EMI override are out of range."""


class InvalidAmount(EmiEngineError):
    """Raised when a payment amount is zero, negative or malformed."""


class ExcessPartPayment(InvalidAmount):
    """Raised when a part-payment exceeds the outstanding principal."""


class NothingToForeclose(EmiEngineError):
    """Raised when a foreclosure finds no pending installments."""


class LoanClosed(EmiEngineError):
    """Raised when a mutation is attempted on a foreclosed or completed loan."""


class OutOfOrderPayment(EmiEngineError):
    """Raised when an installment is paid while an earlier one is still pending."""


class EntryNotFound(EmiEngineError):
    """Raised when a schedule entry does not exist."""


class LoanNotFound(EntryNotFound):
    """Raised when a loan does not exist."""


class ConcurrentModification(EmiEngineError):
    """Raised when a loan changed between read and write.

    The caller should re-read the loan and reapply the operation.
    """

    retryable = True
