"""
Event Ledger Module

Append-only record of loan lifecycle mutations (part-payments, foreclosures).
Each loan's events form a SHA-256 hash chain for tamper detection. Events are
never updated or deleted; ``interest_saved`` is fixed when the event is written.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .models import ReductionPolicy


logger = logging.getLogger("emi_engine.ledger")


class EmiEventType(Enum):
    """Types of lifecycle events"""
    PART_PAYMENT = "PartPayment"
    FORECLOSURE = "Foreclosure"


@dataclass
class EmiEvent(StorageRecord):
    """
    Immutable lifecycle event with hash chaining for tamper detection
    """
    loan_id: str
    sequence: int                       # 1-based position in the loan's chain
    event_type: EmiEventType
    amount: int                         # Part-payment or payoff, minor units
    event_date: date
    payment_method: str
    interest_saved: int
    principal_before: int
    principal_after: int
    entries_discarded: int
    entries_generated: int
    previous_hash: str
    current_hash: str
    reduction_policy: Optional[ReductionPolicy] = None
    new_emi_amount: Optional[int] = None      # EMI after a part-payment
    new_tenure_months: Optional[int] = None   # Installments in the regenerated tail

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this event
        Hash includes all fields except current_hash to prevent circular reference
        """
        hash_data = self._payload()
        hash_data.pop('current_hash')
        hash_data.pop('updated_at')

        # Create deterministic JSON string
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    def _payload(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'loan_id': self.loan_id,
            'sequence': self.sequence,
            'event_type': self.event_type.value,
            'amount': self.amount,
            'event_date': self.event_date.isoformat(),
            'payment_method': self.payment_method,
            'interest_saved': self.interest_saved,
            'principal_before': self.principal_before,
            'principal_after': self.principal_after,
            'entries_discarded': self.entries_discarded,
            'entries_generated': self.entries_generated,
            'previous_hash': self.previous_hash,
            'current_hash': self.current_hash,
            'reduction_policy': self.reduction_policy.value if self.reduction_policy else None,
            'new_emi_amount': self.new_emi_amount,
            'new_tenure_months': self.new_tenure_months
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage with proper enum serialization"""
        return self._payload()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EmiEvent':
        """Create EmiEvent from dictionary with proper enum deserialization"""
        policy = data.get('reduction_policy')
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            sequence=data['sequence'],
            event_type=EmiEventType(data['event_type']),
            amount=data['amount'],
            event_date=date.fromisoformat(data['event_date']),
            payment_method=data['payment_method'],
            interest_saved=data['interest_saved'],
            principal_before=data['principal_before'],
            principal_after=data['principal_after'],
            entries_discarded=data['entries_discarded'],
            entries_generated=data['entries_generated'],
            previous_hash=data['previous_hash'],
            current_hash=data['current_hash'],
            reduction_policy=ReductionPolicy(policy) if policy else None,
            new_emi_amount=data.get('new_emi_amount'),
            new_tenure_months=data.get('new_tenure_months')
        )


class EventLedger:
    """
    Per-loan hash-chained event store

    Appends are expected to run inside the loan's transaction, which
    serializes writers to the same chain.
    """

    def __init__(self, storage: StorageInterface, table_name: str = "emi_events",
                 hash_chain: bool = True):
        self.storage = storage
        self.table_name = table_name
        self.hash_chain = hash_chain

    def append(
        self,
        loan_id: str,
        event_type: EmiEventType,
        amount: int,
        event_date: date,
        payment_method: str,
        interest_saved: int,
        principal_before: int,
        principal_after: int,
        entries_discarded: int,
        entries_generated: int,
        reduction_policy: Optional[ReductionPolicy] = None,
        new_emi_amount: Optional[int] = None,
        new_tenure_months: Optional[int] = None
    ) -> EmiEvent:
        """
        Append an event to the loan's chain

        Returns:
            The stored EmiEvent
        """
        history = self.get_events(loan_id)
        previous_hash = history[-1].current_hash if history else ""
        now = datetime.now(timezone.utc)

        event = EmiEvent(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_id=loan_id,
            sequence=len(history) + 1,
            event_type=event_type,
            amount=amount,
            event_date=event_date,
            payment_method=payment_method,
            interest_saved=interest_saved,
            principal_before=principal_before,
            principal_after=principal_after,
            entries_discarded=entries_discarded,
            entries_generated=entries_generated,
            previous_hash=previous_hash if self.hash_chain else "",
            current_hash="",  # Calculated below
            reduction_policy=reduction_policy,
            new_emi_amount=new_emi_amount,
            new_tenure_months=new_tenure_months
        )
        if self.hash_chain:
            event.current_hash = event.calculate_hash()

        self.storage.save(self.table_name, event.id, event.to_dict())
        logger.debug(f"Appended {event_type.value} event #{event.sequence} for loan {loan_id}")
        return event

    def get_events(self, loan_id: str) -> List[EmiEvent]:
        """All events for a loan in chain order"""
        events = [EmiEvent.from_dict(data)
                  for data in self.storage.find(self.table_name, {'loan_id': loan_id})]
        events.sort(key=lambda e: e.sequence)
        return events

    def get_event(self, event_id: str) -> Optional[EmiEvent]:
        """Get a specific event by ID"""
        data = self.storage.load(self.table_name, event_id)
        if data:
            return EmiEvent.from_dict(data)
        return None

    def total_interest_saved(self, loan_id: str) -> int:
        """Interest saved across the loan's history, as recorded at event time"""
        return sum(e.interest_saved for e in self.get_events(loan_id))

    def verify_chain(self, loan_id: str) -> Dict[str, Any]:
        """
        Verify the integrity of a loan's event chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        events = self.get_events(loan_id)
        result['total_events'] = len(events)
        if not self.hash_chain:
            return result

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        if not result['valid']:
            logger.warning(f"Event chain for loan {loan_id} failed verification")
        return result
