"""
Schedule Store

Persists loans and their ordered installment entries, and provides the
per-loan atomic read-modify-write boundary used by every mutation. Writes of
a loan record are guarded by an optimistic version check.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
import logging
import threading

from .exceptions import ConcurrentModification, EntryNotFound, InvalidLoanTerms, LoanNotFound
from .models import EmiScheduleEntry, Loan, PaymentStatus
from .storage import StorageInterface


logger = logging.getLogger("emi_engine.store")


class ScheduleStore:
    """Source of truth for what is owed and when"""

    def __init__(
        self,
        storage: StorageInterface,
        loans_table: str = "loans",
        schedule_table: str = "emi_schedule"
    ):
        self.storage = storage
        self.loans_table = loans_table
        self.schedule_table = schedule_table
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, loan_id: str) -> threading.RLock:
        with self._registry_lock:
            if loan_id not in self._locks:
                self._locks[loan_id] = threading.RLock()
            return self._locks[loan_id]

    @contextmanager
    def loan_transaction(self, loan_id: str):
        """
        Serialize mutations of one loan and make them all-or-nothing.

        Other loans are not blocked by the per-loan lock.
        """
        with self._lock_for(loan_id):
            with self.storage.atomic():
                yield

    # Loans

    def find_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return Loan.from_dict(data)
        return None

    def get_loan(self, loan_id: str) -> Loan:
        """Get loan by ID or raise LoanNotFound"""
        loan = self.find_loan(loan_id)
        if loan is None:
            raise LoanNotFound(f"Loan {loan_id} not found")
        return loan

    def list_loans(self) -> List[Loan]:
        loans = [Loan.from_dict(data) for data in self.storage.load_all(self.loans_table)]
        loans.sort(key=lambda loan: loan.created_at)
        return loans

    def create_loan(self, loan: Loan, schedule: List[EmiScheduleEntry]) -> None:
        """Store a new loan with its initial schedule"""
        if self.storage.exists(self.loans_table, loan.id):
            raise InvalidLoanTerms(f"Loan {loan.id} already has a schedule; principal is immutable")
        self.storage.save(self.loans_table, loan.id, loan.to_dict())
        self.save_entries(schedule)

    def save_loan(self, loan: Loan) -> Loan:
        """
        Write a loan read earlier in this transaction.

        Raises:
            ConcurrentModification: If the stored version moved since the read
        """
        stored = self.storage.load(self.loans_table, loan.id)
        if stored is None:
            raise LoanNotFound(f"Loan {loan.id} not found")
        if stored.get('version', 0) != loan.version:
            logger.warning(
                f"Version conflict on loan {loan.id}: read {loan.version}, stored {stored.get('version')}"
            )
            raise ConcurrentModification(
                f"Loan {loan.id} was modified concurrently (read version {loan.version}, "
                f"stored version {stored.get('version')})"
            )
        loan.version += 1
        loan.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.loans_table, loan.id, loan.to_dict())
        return loan

    # Schedule entries

    def get_schedule(self, loan_id: str) -> List[EmiScheduleEntry]:
        """All entries for a loan ordered by sequence number"""
        entries = [EmiScheduleEntry.from_dict(data)
                   for data in self.storage.find(self.schedule_table, {'loan_id': loan_id})]
        entries.sort(key=lambda e: e.sequence_number)
        return entries

    def get_entry(self, entry_id: str) -> EmiScheduleEntry:
        data = self.storage.load(self.schedule_table, entry_id)
        if data is None:
            raise EntryNotFound(f"Schedule entry {entry_id} not found")
        return EmiScheduleEntry.from_dict(data)

    def pending_entries(self, loan_id: str) -> List[EmiScheduleEntry]:
        return [e for e in self.get_schedule(loan_id) if e.payment_status == PaymentStatus.PENDING]

    def save_entries(self, entries: Iterable[EmiScheduleEntry]) -> None:
        for entry in entries:
            self.storage.save(self.schedule_table, entry.id, entry.to_dict())

    def delete_entries(self, entries: Iterable[EmiScheduleEntry]) -> int:
        """Delete pending entries; paid history is never removed"""
        deleted = 0
        for entry in entries:
            if entry.is_paid:
                raise ValueError(f"Refusing to delete paid entry {entry.id}")
            if self.storage.delete(self.schedule_table, entry.id):
                deleted += 1
        return deleted


def outstanding_principal(loan: Loan, schedule: List[EmiScheduleEntry]) -> int:
    """
    Principal still owed on a loan.

    Installments are paid in sequence order, so the lowest pending entry
    opens at the balance left by everything paid before it. A regenerated
    tail opens at the post-payment balance, which this also picks up.
    """
    pending = [e for e in schedule if not e.is_paid]
    if pending:
        return min(pending, key=lambda e: e.sequence_number).opening_principal
    paid = [e for e in schedule if e.is_paid]
    if paid:
        return max(paid, key=lambda e: e.sequence_number).remaining_principal
    return loan.principal_amount


def last_paid_sequence(schedule: List[EmiScheduleEntry]) -> int:
    paid = [e.sequence_number for e in schedule if e.is_paid]
    return max(paid) if paid else 0
