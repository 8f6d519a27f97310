"""Repayment summary derived from a loan's schedule and event history."""

from decimal import Decimal, ROUND_HALF_UP
from datetime import date
from dataclasses import dataclass, field
from typing import List, Optional

from .ledger import EmiEvent
from .models import EmiScheduleEntry, Loan
from .store import outstanding_principal


@dataclass(frozen=True)
class LoanSummary:
    loan_id: str
    status: str
    currency: str
    original_principal: int
    current_emi: int
    remaining_principal: int
    total_paid: int
    total_principal_paid: int
    total_interest_paid: int
    total_remaining: int
    remaining_interest: int
    total_interest: int
    interest_percentage: Decimal
    paid_count: int
    pending_count: int
    progress_percent: Decimal
    next_emi_date: Optional[date]
    next_emi_amount: Optional[int]
    total_interest_saved: int
    events: List[EmiEvent] = field(default_factory=list)


def _percent(part: int, whole: int) -> Decimal:
    if whole == 0:
        return Decimal('0.00')
    return (Decimal(part) * 100 / Decimal(whole)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def summarize_loan(loan: Loan, schedule: List[EmiScheduleEntry], events: List[EmiEvent]) -> LoanSummary:
    paid = [e for e in schedule if e.is_paid]
    pending = [e for e in schedule if not e.is_paid]

    interest_paid = sum(e.interest_component for e in paid)
    remaining_interest = sum(e.interest_component for e in pending)
    next_emi = pending[0] if pending else None

    return LoanSummary(
        loan_id=loan.id,
        status=loan.status.value,
        currency=loan.currency.code,
        original_principal=loan.principal_amount,
        current_emi=loan.emi_amount,
        remaining_principal=outstanding_principal(loan, schedule) if pending else 0,
        total_paid=sum(e.emi_amount for e in paid),
        total_principal_paid=sum(e.principal_component for e in paid),
        total_interest_paid=interest_paid,
        total_remaining=sum(e.emi_amount for e in pending),
        remaining_interest=remaining_interest,
        total_interest=interest_paid + remaining_interest,
        interest_percentage=_percent(interest_paid + remaining_interest, loan.principal_amount),
        paid_count=len(paid),
        pending_count=len(pending),
        progress_percent=_percent(len(paid), len(paid) + len(pending)),
        next_emi_date=next_emi.emi_date if next_emi else None,
        next_emi_amount=next_emi.emi_amount if next_emi else None,
        total_interest_saved=sum(e.interest_saved for e in events),
        events=list(events)
    )
