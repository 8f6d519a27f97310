"""
Loan Module

Handles EMI schedule generation, installment payment recording,
part-prepayment handling, foreclosure and loan lifecycle management.

Every mutation runs inside the loan's transaction: read status and pending
entries, validate, then write the new entry set and event. Paid history is
never altered; only the pending tail is ever regenerated.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union
import logging
import uuid

from .currency import Currency, decimal_from_string, monthly_rate, round_half_up
from .exceptions import (
    EntryNotFound, ExcessPartPayment, InvalidAmount, InvalidLoanTerms, LoanClosed,
    NothingToForeclose, OutOfOrderPayment
)
from .ledger import EmiEvent, EmiEventType, EventLedger
from .logging_config import log_action
from .models import EmiScheduleEntry, Loan, LoanStatus, PaymentStatus, ReductionPolicy
from .schedule import (
    DEFAULT_MAX_INSTALLMENTS, calculate_emi, generate_fixed_emi_schedule, generate_schedule
)
from .store import ScheduleStore, last_paid_sequence, outstanding_principal
from .comparison import ComparisonResult, TermSet, compare_terms
from .summary import LoanSummary, summarize_loan


logger = logging.getLogger("emi_engine.loans")

RateInput = Union[Decimal, str, int]


@dataclass(frozen=True)
class PartPaymentResult:
    """Outcome of a part-payment"""
    new_tail: List[EmiScheduleEntry]
    interest_saved: int
    event: EmiEvent
    loan: Loan


@dataclass(frozen=True)
class ForeclosureResult:
    """Outcome of a foreclosure"""
    interest_saved: int
    payoff_amount: int
    event: EmiEvent
    loan: Loan


def parse_rate(annual_rate: RateInput) -> Decimal:
    """Annual percentage rate as Decimal; floats go through str() first"""
    try:
        if isinstance(annual_rate, Decimal):
            return annual_rate
        if isinstance(annual_rate, str):
            return decimal_from_string(annual_rate)
        if isinstance(annual_rate, bool):
            raise ValueError("boolean is not a rate")
        return Decimal(str(annual_rate))
    except ValueError as e:
        raise InvalidLoanTerms(f"Invalid interest rate {annual_rate!r}: {e}")


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer number of minor units, got {amount!r}")
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")


class LoanEngine:
    """
    Manages the loan lifecycle from schedule generation through closure
    """

    def __init__(
        self,
        store: ScheduleStore,
        ledger: EventLedger,
        max_tenure_months: int = DEFAULT_MAX_INSTALLMENTS,
        default_currency: Currency = Currency.INR
    ):
        self.store = store
        self.ledger = ledger
        self.max_tenure_months = max_tenure_months
        self.default_currency = default_currency

    def generate_schedule(
        self,
        loan_id: Optional[str],
        principal: int,
        annual_rate: RateInput,
        tenure_months: int,
        start_date: date,
        emi_override: Optional[int] = None,
        currency: Optional[Currency] = None,
        name: Optional[str] = None,
        lender: Optional[str] = None
    ) -> List[EmiScheduleEntry]:
        """
        Create a loan and its initial amortization schedule

        Args:
            loan_id: Loan ID (generated when None)
            principal: Principal in minor units
            annual_rate: Annual percentage rate, e.g. "9.5"
            tenure_months: Contracted number of installments
            start_date: Anchor date; the first installment falls a month later
            emi_override: Installment to honour exactly instead of deriving it

        Returns:
            The generated schedule

        Raises:
            InvalidLoanTerms: On out-of-range terms; nothing is stored
        """
        rate = parse_rate(annual_rate)
        if tenure_months > self.max_tenure_months:
            raise InvalidLoanTerms(
                f"Tenure {tenure_months} exceeds the maximum of {self.max_tenure_months} months"
            )
        loan_id = loan_id or str(uuid.uuid4())
        schedule = generate_schedule(
            loan_id, principal, monthly_rate(rate), tenure_months, start_date,
            emi_override=emi_override
        )

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=loan_id,
            created_at=now,
            updated_at=now,
            principal_amount=principal,
            annual_interest_rate=rate,
            tenure_months=tenure_months,
            start_date=start_date,
            emi_amount=emi_override if emi_override is not None else round_half_up(
                calculate_emi(principal, monthly_rate(rate), tenure_months)),
            currency=currency or self.default_currency,
            emi_amount_override=emi_override,
            name=name,
            lender=lender
        )
        with self.store.loan_transaction(loan_id):
            self.store.create_loan(loan, schedule)

        log_action(logger, "info", "Loan schedule generated", loan_id=loan_id,
                   action="generate_schedule",
                   extra={"principal": principal, "annual_rate": str(rate),
                          "tenure_months": tenure_months, "installments": len(schedule),
                          "emi_amount": loan.emi_amount})
        return schedule

    def get_loan(self, loan_id: str) -> Loan:
        return self.store.get_loan(loan_id)

    def list_loans(self) -> List[Loan]:
        return self.store.list_loans()

    def get_schedule(self, loan_id: str) -> List[EmiScheduleEntry]:
        """Get amortization schedule for loan"""
        self.store.get_loan(loan_id)
        return self.store.get_schedule(loan_id)

    def get_events(self, loan_id: str) -> List[EmiEvent]:
        self.store.get_loan(loan_id)
        return self.ledger.get_events(loan_id)

    def mark_paid(self, entry_id: str, paid_date: date, payment_method: str) -> EmiScheduleEntry:
        """
        Mark an installment paid

        Re-marking a paid entry returns the stored entry unchanged.
        Installments are paid in sequence order.

        Raises:
            EntryNotFound: If the entry does not exist
            LoanClosed: If the entry is pending on, or was discarded from, a
                foreclosed or completed loan
            OutOfOrderPayment: If an earlier installment is still pending
        """
        loan_id = self._find_entry(entry_id).loan_id
        with self.store.loan_transaction(loan_id):
            return self._mark_paid_locked(entry_id, paid_date, payment_method)

    def mark_paid_bulk(
        self,
        entry_ids: Sequence[str],
        paid_date: date,
        payment_method: str
    ) -> List[EmiScheduleEntry]:
        """
        Mark several installments paid, one transaction per loan

        Every entry is looked up and every loan checked for status and for
        a skipped earlier installment before anything is written, so any of
        these failures rejects the whole call. A conflicting write landing
        between the check and a later loan's transaction still leaves the
        loans already processed committed.

        Returns:
            Entries in the order their IDs were given
        """
        by_loan: Dict[str, List[EmiScheduleEntry]] = {}
        for entry_id in entry_ids:
            entry = self._find_entry(entry_id)
            by_loan.setdefault(entry.loan_id, []).append(entry)

        for loan_id, entries in by_loan.items():
            self._check_payable(self.store.get_loan(loan_id), entries,
                                self.store.pending_entries(loan_id))

        marked: Dict[str, EmiScheduleEntry] = {}
        for loan_id, entries in by_loan.items():
            with self.store.loan_transaction(loan_id):
                for entry in sorted(entries, key=lambda e: e.sequence_number):
                    marked[entry.id] = self._mark_paid_locked(entry.id, paid_date, payment_method)
        return [marked[entry_id] for entry_id in entry_ids]

    def _find_entry(self, entry_id: str) -> EmiScheduleEntry:
        """Look up an entry; a discarded entry of a closed loan reports LoanClosed"""
        try:
            return self.store.get_entry(entry_id)
        except EntryNotFound:
            loan_id, _, sequence = entry_id.rpartition("_")
            loan = self.store.find_loan(loan_id) if loan_id and sequence.isdigit() else None
            if loan is not None and not loan.is_active:
                raise LoanClosed(
                    f"Loan {loan_id} is {loan.status.value}; entry {entry_id} is no longer payable"
                )
            raise

    def _check_payable(
        self,
        loan: Loan,
        requested: List[EmiScheduleEntry],
        pending: List[EmiScheduleEntry]
    ) -> None:
        """Paid entries must stay a prefix of the schedule once ``requested`` is paid"""
        unpaid = [e for e in requested if not e.is_paid]
        if not unpaid:
            return
        last = max(unpaid, key=lambda e: e.sequence_number)

        if not loan.is_active:
            log_action(logger, "warning", "Payment rejected on closed loan",
                       loan_id=loan.id, action="mark_paid",
                       extra={"entry_id": last.id, "status": loan.status.value})
            raise LoanClosed(f"Loan {loan.id} is {loan.status.value}; entry {last.id} cannot be paid")

        requested_ids = {e.id for e in unpaid}
        skipped = [e for e in pending
                   if e.sequence_number < last.sequence_number and e.id not in requested_ids]
        if skipped:
            first = min(skipped, key=lambda e: e.sequence_number)
            log_action(logger, "warning", "Payment rejected out of sequence",
                       loan_id=loan.id, action="mark_paid",
                       extra={"entry_id": last.id, "first_pending": first.id})
            raise OutOfOrderPayment(
                f"Entry {last.id} cannot be paid while earlier entry {first.id} is pending"
            )

    def _mark_paid_locked(self, entry_id: str, paid_date: date, payment_method: str) -> EmiScheduleEntry:
        entry = self._find_entry(entry_id)
        if entry.is_paid:
            logger.debug(f"Entry {entry_id} already paid; returning stored record")
            return entry

        loan = self.store.get_loan(entry.loan_id)
        self._check_payable(loan, [entry], self.store.pending_entries(loan.id))

        entry.payment_status = PaymentStatus.PAID
        entry.paid_date = paid_date
        entry.payment_method = payment_method
        self.store.save_entries([entry])

        if not self.store.pending_entries(loan.id):
            loan.status = LoanStatus.COMPLETED
        self.store.save_loan(loan)

        log_action(logger, "info", "EMI marked paid", loan_id=loan.id, action="mark_paid",
                   extra={"entry_id": entry_id, "sequence_number": entry.sequence_number,
                          "emi_amount": entry.emi_amount, "status": loan.status.value})
        return entry

    def apply_part_payment(
        self,
        loan_id: str,
        amount: int,
        event_date: date,
        reduction_policy: Union[ReductionPolicy, str],
        payment_method: str
    ) -> PartPaymentResult:
        """
        Apply a lump-sum principal reduction and regenerate the pending tail

        Args:
            loan_id: Loan ID
            amount: Part-payment in minor units
            event_date: Payment date; the new tail starts the month after
            reduction_policy: ReduceTenure keeps the EMI, ReduceEmi keeps the
                number of pending installments
            payment_method: Free-text payment channel

        Returns:
            PartPaymentResult with the new tail and interest saved

        Raises:
            LoanClosed, InvalidAmount, ExcessPartPayment
            InvalidLoanTerms: If event_date is before the last paid installment
        """
        policy = ReductionPolicy(reduction_policy)
        _validate_amount(amount)

        with self.store.loan_transaction(loan_id):
            loan = self.store.get_loan(loan_id)
            if not loan.is_active:
                raise LoanClosed(f"Loan {loan_id} is {loan.status.value}; part-payment not allowed")

            schedule = self.store.get_schedule(loan_id)
            pending = [e for e in schedule if not e.is_paid]
            paid = [e for e in schedule if e.is_paid]
            if paid:
                last_paid = max(paid, key=lambda e: e.sequence_number)
                if event_date < last_paid.emi_date:
                    raise InvalidLoanTerms(
                        f"Part-payment date {event_date} is before installment {last_paid.id} "
                        f"already paid for {last_paid.emi_date}"
                    )

            principal_before = outstanding_principal(loan, schedule)
            if amount > principal_before:
                log_action(logger, "warning", "Part-payment exceeds outstanding principal",
                           loan_id=loan_id, action="part_payment",
                           extra={"amount": amount, "outstanding": principal_before})
                raise ExcessPartPayment(
                    f"Part-payment {amount} exceeds outstanding principal {principal_before}"
                )

            new_principal = principal_before - amount
            rate = monthly_rate(loan.annual_interest_rate)
            first_sequence = last_paid_sequence(schedule) + 1

            if new_principal == 0:
                new_tail = []
            elif policy == ReductionPolicy.REDUCE_TENURE:
                new_tail = generate_fixed_emi_schedule(
                    loan_id, new_principal, rate, loan.emi_amount, event_date,
                    first_sequence=first_sequence, max_installments=self.max_tenure_months
                )
            else:
                installments = max(len(pending), 1)
                new_tail = generate_schedule(
                    loan_id, new_principal, rate, installments, event_date,
                    first_sequence=first_sequence
                )
                loan.emi_amount = round_half_up(calculate_emi(new_principal, rate, installments))

            interest_saved = (
                sum(e.interest_component for e in pending)
                - sum(e.interest_component for e in new_tail)
            )

            self.store.delete_entries(pending)
            self.store.save_entries(new_tail)
            if not new_tail:
                loan.status = LoanStatus.COMPLETED
            self.store.save_loan(loan)

            event = self.ledger.append(
                loan_id=loan_id,
                event_type=EmiEventType.PART_PAYMENT,
                amount=amount,
                event_date=event_date,
                payment_method=payment_method,
                interest_saved=interest_saved,
                principal_before=principal_before,
                principal_after=new_principal,
                entries_discarded=len(pending),
                entries_generated=len(new_tail),
                reduction_policy=policy,
                new_emi_amount=loan.emi_amount,
                new_tenure_months=len(new_tail)
            )

        log_action(logger, "info", "Part-payment applied", loan_id=loan_id, action="part_payment",
                   extra={"amount": amount, "policy": policy.value,
                          "interest_saved": interest_saved,
                          "entries_discarded": len(pending),
                          "entries_generated": len(new_tail),
                          "status": loan.status.value})
        return PartPaymentResult(new_tail=new_tail, interest_saved=interest_saved,
                                 event=event, loan=loan)

    def apply_foreclosure(
        self,
        loan_id: str,
        foreclosure_date: date,
        payment_method: str
    ) -> ForeclosureResult:
        """
        Pay off the outstanding principal and close the loan

        Raises:
            LoanClosed: If the loan is already foreclosed
            NothingToForeclose: If no installment is pending
        """
        with self.store.loan_transaction(loan_id):
            loan = self.store.get_loan(loan_id)
            if loan.status == LoanStatus.FORECLOSED:
                raise LoanClosed(f"Loan {loan_id} is already foreclosed")

            schedule = self.store.get_schedule(loan_id)
            pending = [e for e in schedule if not e.is_paid]
            if not pending:
                raise NothingToForeclose(f"Loan {loan_id} has no pending installments")
            if not loan.is_active:
                raise LoanClosed(f"Loan {loan_id} is {loan.status.value}; foreclosure not allowed")

            payoff_amount = outstanding_principal(loan, schedule)
            interest_saved = sum(e.interest_component for e in pending)

            self.store.delete_entries(pending)
            loan.status = LoanStatus.FORECLOSED
            self.store.save_loan(loan)

            event = self.ledger.append(
                loan_id=loan_id,
                event_type=EmiEventType.FORECLOSURE,
                amount=payoff_amount,
                event_date=foreclosure_date,
                payment_method=payment_method,
                interest_saved=interest_saved,
                principal_before=payoff_amount,
                principal_after=0,
                entries_discarded=len(pending),
                entries_generated=0
            )

        log_action(logger, "info", "Loan foreclosed", loan_id=loan_id, action="foreclosure",
                   extra={"payoff_amount": payoff_amount, "interest_saved": interest_saved,
                          "entries_discarded": len(pending)})
        return ForeclosureResult(interest_saved=interest_saved, payoff_amount=payoff_amount,
                                 event=event, loan=loan)

    def compare_terms(
        self,
        loan_id: str,
        alternatives: Sequence[TermSet],
        as_of: Optional[date] = None
    ) -> List[ComparisonResult]:
        """Compare the loan's remaining cost against alternative terms (read-only)"""
        loan = self.store.get_loan(loan_id)
        schedule = self.store.get_schedule(loan_id)
        return compare_terms(loan, schedule, alternatives, as_of=as_of or date.today(),
                             max_tenure_months=self.max_tenure_months)

    def summarize(self, loan_id: str) -> LoanSummary:
        """Repayment progress and lifetime totals for a loan"""
        loan = self.store.get_loan(loan_id)
        return summarize_loan(loan, self.store.get_schedule(loan_id),
                              self.ledger.get_events(loan_id))

    def compare_loans(self, loan_ids: Sequence[str]) -> List[LoanSummary]:
        """Summaries of several loans side by side"""
        return [self.summarize(loan_id) for loan_id in loan_ids]

    def verify_event_chain(self, loan_id: str) -> Dict:
        self.store.get_loan(loan_id)
        return self.ledger.verify_chain(loan_id)
