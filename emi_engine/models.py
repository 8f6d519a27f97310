"""
Loan Domain Records

Loan contracts and EMI schedule rows as stored by the Schedule Store. All
amounts are integer minor units of the loan's currency.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum

from .currency import Currency, Money
from .storage import StorageRecord


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"            # Installments outstanding
    FORECLOSED = "foreclosed"    # Paid off early in full (terminal)
    COMPLETED = "completed"      # Every installment settled (terminal)


class PaymentStatus(Enum):
    """Installment payment states"""
    PENDING = "Pending"
    PAID = "Paid"


class ReductionPolicy(Enum):
    """How a part-payment reshapes the pending tail"""
    REDUCE_TENURE = "ReduceTenure"  # Same EMI, fewer installments
    REDUCE_EMI = "ReduceEmi"        # Same installment count, smaller EMI


def entry_id_for(loan_id: str, sequence_number: int) -> str:
    return f"{loan_id}_{sequence_number}"


def _optional_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


@dataclass
class EmiScheduleEntry:
    """Single installment row of an amortization schedule"""
    loan_id: str
    sequence_number: int
    emi_date: date
    emi_amount: int
    principal_component: int
    interest_component: int
    remaining_principal: int
    payment_status: PaymentStatus = PaymentStatus.PENDING
    paid_date: Optional[date] = None
    payment_method: Optional[str] = None

    def __post_init__(self):
        if self.sequence_number < 1:
            raise ValueError(f"Sequence numbers start at 1, got {self.sequence_number}")
        if self.principal_component + self.interest_component != self.emi_amount:
            raise ValueError(
                f"EMI {self.emi_amount} does not equal principal {self.principal_component} "
                f"+ interest {self.interest_component}"
            )
        if self.remaining_principal < 0:
            raise ValueError(f"Remaining principal cannot be negative: {self.remaining_principal}")

    @property
    def id(self) -> str:
        return entry_id_for(self.loan_id, self.sequence_number)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    @property
    def opening_principal(self) -> int:
        """Principal outstanding before this installment"""
        return self.remaining_principal + self.principal_component

    def to_dict(self) -> Dict[str, Any]:
        """Convert entry to dictionary"""
        return {
            'id': self.id,
            'loan_id': self.loan_id,
            'sequence_number': self.sequence_number,
            'emi_date': self.emi_date.isoformat(),
            'emi_amount': self.emi_amount,
            'principal_component': self.principal_component,
            'interest_component': self.interest_component,
            'remaining_principal': self.remaining_principal,
            'payment_status': self.payment_status.value,
            'paid_date': self.paid_date.isoformat() if self.paid_date else None,
            'payment_method': self.payment_method
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EmiScheduleEntry':
        """Convert dictionary to entry"""
        return cls(
            loan_id=data['loan_id'],
            sequence_number=data['sequence_number'],
            emi_date=date.fromisoformat(data['emi_date']),
            emi_amount=data['emi_amount'],
            principal_component=data['principal_component'],
            interest_component=data['interest_component'],
            remaining_principal=data['remaining_principal'],
            payment_status=PaymentStatus(data['payment_status']),
            paid_date=_optional_date(data.get('paid_date')),
            payment_method=data.get('payment_method')
        )


@dataclass
class Loan(StorageRecord):
    """Liability contract with its current lifecycle state"""
    principal_amount: int
    annual_interest_rate: Decimal       # Percent, e.g. Decimal('9.5')
    tenure_months: int                  # Originally contracted installments
    start_date: date                    # First installment falls one month later
    emi_amount: int                     # Current regular installment
    currency: Currency = Currency.INR
    emi_amount_override: Optional[int] = None
    status: LoanStatus = LoanStatus.ACTIVE
    version: int = 0
    name: Optional[str] = None
    lender: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    @property
    def principal(self) -> Money:
        return Money(self.principal_amount, self.currency)

    def to_dict(self) -> Dict[str, Any]:
        """Convert loan to dictionary"""
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'principal_amount': self.principal_amount,
            'annual_interest_rate': str(self.annual_interest_rate),
            'tenure_months': self.tenure_months,
            'start_date': self.start_date.isoformat(),
            'emi_amount': self.emi_amount,
            'currency': self.currency.code,
            'emi_amount_override': self.emi_amount_override,
            'status': self.status.value,
            'version': self.version,
            'name': self.name,
            'lender': self.lender
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        """Convert dictionary to loan"""
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            principal_amount=data['principal_amount'],
            annual_interest_rate=Decimal(data['annual_interest_rate']),
            tenure_months=data['tenure_months'],
            start_date=date.fromisoformat(data['start_date']),
            emi_amount=data['emi_amount'],
            currency=Currency[data['currency']],
            emi_amount_override=data.get('emi_amount_override'),
            status=LoanStatus(data['status']),
            version=data.get('version', 0),
            name=data.get('name'),
            lender=data.get('lender')
        )
