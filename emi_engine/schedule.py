"""
Schedule Generator

Builds equated-monthly-installment amortization tables. Intermediate values
(EMI, interest accrual) are unrounded Decimals; each stored component is
rounded half-up to minor units. Rounding drift is absorbed by the final
installment, which always clears the remaining principal exactly.
"""

from decimal import Decimal, localcontext
from datetime import date
from dataclasses import dataclass
from typing import List, Optional, Sequence
import calendar

from .currency import RATE_PRECISION, round_half_up
from .exceptions import InvalidLoanTerms
from .models import EmiScheduleEntry

DEFAULT_MAX_INSTALLMENTS = 600


@dataclass(frozen=True)
class ScheduleTotals:
    """Aggregates over a list of schedule entries"""
    installments: int
    total_emi: int
    total_principal: int
    total_interest: int


def add_months(start_date: date, months: int) -> date:
    """Add calendar months to a date, clamping to the end of shorter months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def validate_terms(principal: int, rate: Decimal, tenure_months: int) -> None:
    """Reject terms no schedule can be built from"""
    if isinstance(principal, bool) or not isinstance(principal, int) or principal <= 0:
        raise InvalidLoanTerms(f"Principal must be a positive number of minor units, got {principal!r}")
    if not isinstance(rate, Decimal) or not rate.is_finite() or rate < 0:
        raise InvalidLoanTerms(f"Interest rate must be a non-negative Decimal, got {rate!r}")
    if isinstance(tenure_months, bool) or not isinstance(tenure_months, int) or tenure_months <= 0:
        raise InvalidLoanTerms(f"Tenure must be a positive number of months, got {tenure_months!r}")


def calculate_emi(principal: int, rate: Decimal, tenure_months: int) -> Decimal:
    """
    Standard fixed installment: P * r * (1+r)^n / ((1+r)^n - 1), or P / n at r = 0.

    Args:
        principal: Principal in minor units
        rate: Monthly rate as a fraction
        tenure_months: Number of installments

    Returns:
        Unrounded installment in minor units
    """
    validate_terms(principal, rate, tenure_months)
    with localcontext() as ctx:
        ctx.prec = RATE_PRECISION
        if rate == 0:
            return Decimal(principal) / Decimal(tenure_months)
        factor = (Decimal(1) + rate) ** tenure_months
        return Decimal(principal) * rate * factor / (factor - Decimal(1))


def _accrue(balance: int, rate: Decimal) -> int:
    with localcontext() as ctx:
        ctx.prec = RATE_PRECISION
        return round_half_up(Decimal(balance) * rate)


def generate_schedule(
    loan_id: str,
    principal: int,
    rate: Decimal,
    tenure_months: int,
    start_date: date,
    emi_override: Optional[int] = None,
    first_sequence: int = 1
) -> List[EmiScheduleEntry]:
    """
    Generate a fixed-tenure amortization schedule.

    Entry ``i`` falls on ``start_date + i`` calendar months. An override that
    clears the balance early ends the schedule at that installment.

    Args:
        loan_id: Loan the entries belong to
        principal: Principal in minor units
        rate: Monthly rate as a fraction (see ``currency.monthly_rate``)
        tenure_months: Number of installments
        start_date: Anchor date; the first installment is one month later
        emi_override: Installment to honour instead of deriving it
        first_sequence: Sequence number of the first generated entry

    Returns:
        Entries ordered by sequence number

    Raises:
        InvalidLoanTerms: On non-positive principal or tenure, negative rate,
            or an override that does not cover the first month's interest
    """
    validate_terms(principal, rate, tenure_months)
    if emi_override is not None:
        _validate_override(emi_override, principal, rate)
        emi = emi_override
    else:
        emi = round_half_up(calculate_emi(principal, rate, tenure_months))

    schedule = []
    remaining = principal
    for offset in range(1, tenure_months + 1):
        interest = _accrue(remaining, rate)
        principal_part = emi - interest
        if offset == tenure_months or principal_part >= remaining:
            # Final installment pays exactly what is left
            principal_part = remaining
        remaining -= principal_part

        schedule.append(EmiScheduleEntry(
            loan_id=loan_id,
            sequence_number=first_sequence + offset - 1,
            emi_date=add_months(start_date, offset),
            emi_amount=principal_part + interest,
            principal_component=principal_part,
            interest_component=interest,
            remaining_principal=remaining
        ))

        if remaining == 0:
            break

    return schedule


def generate_fixed_emi_schedule(
    loan_id: str,
    principal: int,
    rate: Decimal,
    emi_amount: int,
    start_date: date,
    first_sequence: int = 1,
    max_installments: int = DEFAULT_MAX_INSTALLMENTS
) -> List[EmiScheduleEntry]:
    """
    Generate a schedule that keeps the installment fixed and runs until the
    balance is cleared, truncating the last installment.

    Raises:
        InvalidLoanTerms: If the installment does not amortize the balance
            within ``max_installments``
    """
    validate_terms(principal, rate, max_installments)
    if isinstance(emi_amount, bool) or not isinstance(emi_amount, int) or emi_amount <= 0:
        raise InvalidLoanTerms(f"EMI must be a positive number of minor units, got {emi_amount!r}")
    if emi_amount <= _accrue(principal, rate):
        raise InvalidLoanTerms(
            f"EMI {emi_amount} does not exceed the first month's interest; the balance would never amortize"
        )

    schedule = []
    remaining = principal
    offset = 0
    while remaining > 0:
        offset += 1
        if offset > max_installments:
            raise InvalidLoanTerms(
                f"EMI {emi_amount} does not clear principal {principal} within {max_installments} months"
            )
        interest = _accrue(remaining, rate)
        principal_part = min(emi_amount - interest, remaining)
        remaining -= principal_part

        schedule.append(EmiScheduleEntry(
            loan_id=loan_id,
            sequence_number=first_sequence + offset - 1,
            emi_date=add_months(start_date, offset),
            emi_amount=principal_part + interest,
            principal_component=principal_part,
            interest_component=interest,
            remaining_principal=remaining
        ))

    return schedule


def _validate_override(emi_override: int, principal: int, rate: Decimal) -> None:
    if isinstance(emi_override, bool) or not isinstance(emi_override, int) or emi_override <= 0:
        raise InvalidLoanTerms(f"EMI override must be a positive number of minor units, got {emi_override!r}")
    first_interest = _accrue(principal, rate)
    if emi_override < first_interest:
        raise InvalidLoanTerms(
            f"EMI override {emi_override} is below the first month's interest {first_interest}"
        )


def schedule_totals(entries: Sequence[EmiScheduleEntry]) -> ScheduleTotals:
    """Sum installments, principal and interest over entries"""
    return ScheduleTotals(
        installments=len(entries),
        total_emi=sum(e.emi_amount for e in entries),
        total_principal=sum(e.principal_component for e in entries),
        total_interest=sum(e.interest_component for e in entries)
    )
