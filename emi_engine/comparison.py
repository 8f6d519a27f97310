"""
Refinance / Comparison Evaluator

Read-only analysis of an existing loan's remaining cost against hypothetical
alternative terms. Alternatives are priced by running the Schedule Generator
over the outstanding principal; nothing is written.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union
import math

from .currency import decimal_from_string, monthly_rate, round_half_up
from .exceptions import InvalidAmount, InvalidLoanTerms, LoanClosed
from .models import EmiScheduleEntry, Loan
from .schedule import calculate_emi, generate_schedule, schedule_totals
from .store import outstanding_principal


@dataclass(frozen=True)
class TermSet:
    """Hypothetical loan terms for the remaining principal"""
    annual_interest_rate: Union[Decimal, str]
    tenure_months: Optional[int] = None      # Defaults to the remaining tenure
    switching_cost: int = 0                  # Processing fee etc., minor units
    capitalize_switching_cost: bool = False  # Add the fee to the new principal
    label: Optional[str] = None


@dataclass(frozen=True)
class ComparisonResult:
    """Current versus hypothetical cost of the remaining loan"""
    label: Optional[str]
    remaining_principal: int
    current_remaining_months: int
    current_emi: int
    current_interest: int
    annual_interest_rate: Decimal
    hypothetical_tenure_months: int
    hypothetical_emi: int
    hypothetical_interest: int
    switching_cost: int
    monthly_savings: int
    net_savings: int
    break_even_months: Optional[int]

    @property
    def is_beneficial(self) -> bool:
        return self.net_savings > 0


def break_even_months(switching_cost: int, monthly_savings: int) -> Optional[int]:
    """Months of lower EMIs needed to recover a switching cost"""
    if switching_cost == 0:
        return 0
    if monthly_savings <= 0:
        return None
    return math.ceil(switching_cost / monthly_savings)


def _annual_rate(value: Union[Decimal, str]) -> Decimal:
    try:
        rate = value if isinstance(value, Decimal) else decimal_from_string(str(value))
    except ValueError:
        raise InvalidLoanTerms(f"Invalid alternative rate {value!r}")
    if not rate.is_finite() or rate < 0:
        raise InvalidLoanTerms(f"Alternative rate must be non-negative, got {value!r}")
    return rate


def evaluate_alternative(
    loan: Loan,
    pending: List[EmiScheduleEntry],
    remaining_principal: int,
    alternative: TermSet,
    as_of: date,
    max_tenure_months: int
) -> ComparisonResult:
    rate = _annual_rate(alternative.annual_interest_rate)
    tenure = alternative.tenure_months if alternative.tenure_months is not None else len(pending)
    if tenure > max_tenure_months:
        raise InvalidLoanTerms(f"Tenure {tenure} exceeds the maximum of {max_tenure_months} months")
    fee = alternative.switching_cost
    if isinstance(fee, bool) or not isinstance(fee, int) or fee < 0:
        raise InvalidAmount(f"Switching cost must be a non-negative number of minor units, got {fee!r}")

    principal = remaining_principal + fee if alternative.capitalize_switching_cost else remaining_principal
    hypothetical = generate_schedule(loan.id, principal, monthly_rate(rate), tenure, as_of)
    hypothetical_emi = round_half_up(calculate_emi(principal, monthly_rate(rate), tenure))
    hypothetical_interest = schedule_totals(hypothetical).total_interest
    current_interest = schedule_totals(pending).total_interest
    monthly_savings = loan.emi_amount - hypothetical_emi

    return ComparisonResult(
        label=alternative.label,
        remaining_principal=remaining_principal,
        current_remaining_months=len(pending),
        current_emi=loan.emi_amount,
        current_interest=current_interest,
        annual_interest_rate=rate,
        hypothetical_tenure_months=len(hypothetical),
        hypothetical_emi=hypothetical_emi,
        hypothetical_interest=hypothetical_interest,
        switching_cost=fee,
        monthly_savings=monthly_savings,
        net_savings=current_interest - hypothetical_interest - fee,
        break_even_months=break_even_months(fee, monthly_savings)
    )


def compare_terms(
    loan: Loan,
    schedule: List[EmiScheduleEntry],
    alternatives: Sequence[TermSet],
    as_of: date,
    max_tenure_months: int
) -> List[ComparisonResult]:
    """
    Price each alternative against the loan's pending schedule

    Args:
        loan: Loan being evaluated
        schedule: The loan's full schedule
        alternatives: Hypothetical term sets
        as_of: Anchor date for the hypothetical schedules

    Returns:
        One ComparisonResult per alternative, in input order

    Raises:
        LoanClosed: If nothing is left to refinance
        InvalidLoanTerms: If an alternative has invalid terms
    """
    pending = [e for e in schedule if not e.is_paid]
    if not loan.is_active or not pending:
        raise LoanClosed(f"Loan {loan.id} is {loan.status.value}; nothing left to refinance")
    if not alternatives:
        raise InvalidLoanTerms("At least one alternative term set is required")

    remaining = outstanding_principal(loan, schedule)
    return [
        evaluate_alternative(loan, pending, remaining, alternative, as_of, max_tenure_months)
        for alternative in alternatives
    ]
