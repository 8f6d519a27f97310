"""
Pydantic schemas for API requests and response serialization

Amounts are integer minor units; rates are decimal strings.
"""

from dataclasses import asdict
from decimal import Decimal
from datetime import date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..comparison import ComparisonResult, TermSet
from ..models import ReductionPolicy
from ..summary import LoanSummary


class CreateLoanRequest(BaseModel):
    loan_id: Optional[str] = None
    principal: int = Field(..., description="Principal in minor units")
    annual_interest_rate: str = Field(..., description="Annual percentage rate, e.g. '9.5'")
    tenure_months: int
    start_date: date = Field(..., description="First installment falls one month later")
    emi_override: Optional[int] = Field(None, description="Installment to honour exactly, minor units")
    currency: Optional[str] = Field(None, description="Currency code (INR, USD, etc.)")
    name: Optional[str] = None
    lender: Optional[str] = None


class MarkPaidRequest(BaseModel):
    paid_date: date
    payment_method: Optional[str] = None


class BulkMarkPaidRequest(BaseModel):
    entry_ids: List[str] = Field(..., min_length=1)
    paid_date: date
    payment_method: Optional[str] = None


class PartPaymentRequest(BaseModel):
    amount: int = Field(..., description="Part-payment in minor units")
    event_date: date
    reduction_policy: ReductionPolicy
    payment_method: Optional[str] = None


class ForeclosureRequest(BaseModel):
    foreclosure_date: date
    payment_method: Optional[str] = None


class TermSetModel(BaseModel):
    annual_interest_rate: str
    tenure_months: Optional[int] = None
    switching_cost: int = 0
    capitalize_switching_cost: bool = False
    label: Optional[str] = None

    def to_term_set(self) -> TermSet:
        return TermSet(
            annual_interest_rate=self.annual_interest_rate,
            tenure_months=self.tenure_months,
            switching_cost=self.switching_cost,
            capitalize_switching_cost=self.capitalize_switching_cost,
            label=self.label
        )


class CompareTermsRequest(BaseModel):
    alternatives: List[TermSetModel] = Field(..., min_length=1)
    as_of: Optional[date] = None


class CompareLoansRequest(BaseModel):
    loan_ids: List[str] = Field(..., min_length=1)


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def comparison_to_dict(result: ComparisonResult) -> Dict[str, Any]:
    data = {k: _plain(v) for k, v in asdict(result).items()}
    data['is_beneficial'] = result.is_beneficial
    return data


def summary_to_dict(summary: LoanSummary) -> Dict[str, Any]:
    data = {k: _plain(getattr(summary, k)) for k in summary.__dataclass_fields__ if k != 'events'}
    data['events'] = [event.to_dict() for event in summary.events]
    return data
