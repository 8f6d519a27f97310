"""
Loan endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .deps import EmiSystem, engine_error, get_emi_system
from .schemas import (
    CompareLoansRequest, CompareTermsRequest, CreateLoanRequest, ForeclosureRequest,
    PartPaymentRequest, comparison_to_dict, summary_to_dict
)
from ..currency import Currency
from ..exceptions import EmiEngineError


router = APIRouter()


def _currency(code):
    if code is None:
        return None
    try:
        return Currency[code.upper()]
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "InvalidLoanTerms", "message": f"Unsupported currency {code}",
                    "retryable": False}
        )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_loan(
    request: CreateLoanRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Create a loan and generate its schedule"""
    try:
        schedule = system.engine.generate_schedule(
            loan_id=request.loan_id,
            principal=request.principal,
            annual_rate=request.annual_interest_rate,
            tenure_months=request.tenure_months,
            start_date=request.start_date,
            emi_override=request.emi_override,
            currency=_currency(request.currency),
            name=request.name,
            lender=request.lender
        )
        loan = system.engine.get_loan(schedule[0].loan_id)

        return {
            "loan": loan.to_dict(),
            "schedule": [entry.to_dict() for entry in schedule],
            "message": "Loan schedule generated successfully"
        }

    except EmiEngineError as e:
        raise engine_error(e)


@router.get("")
def list_loans(system: EmiSystem = Depends(get_emi_system)):
    """List all loans"""
    loans = system.engine.list_loans()
    return {"loans": [loan.to_dict() for loan in loans], "count": len(loans)}


@router.post("/summaries")
def compare_loans(
    request: CompareLoansRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Summaries of several loans side by side"""
    try:
        summaries = system.engine.compare_loans(request.loan_ids)
        return {"summaries": [summary_to_dict(s) for s in summaries]}

    except EmiEngineError as e:
        raise engine_error(e)


@router.get("/{loan_id}")
def get_loan(loan_id: str, system: EmiSystem = Depends(get_emi_system)):
    """Get loan details"""
    try:
        return system.engine.get_loan(loan_id).to_dict()
    except EmiEngineError as e:
        raise engine_error(e)


@router.get("/{loan_id}/schedule")
def get_schedule(loan_id: str, system: EmiSystem = Depends(get_emi_system)):
    """Get the loan's installments ordered by sequence number"""
    try:
        schedule = system.engine.get_schedule(loan_id)
        return {
            "loan_id": loan_id,
            "schedule": [entry.to_dict() for entry in schedule]
        }
    except EmiEngineError as e:
        raise engine_error(e)


@router.post("/{loan_id}/part-payments")
def apply_part_payment(
    loan_id: str,
    request: PartPaymentRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Apply a part-payment and regenerate the pending installments"""
    try:
        result = system.engine.apply_part_payment(
            loan_id=loan_id,
            amount=request.amount,
            event_date=request.event_date,
            reduction_policy=request.reduction_policy,
            payment_method=system.payment_method(request.payment_method)
        )

        return {
            "loan": result.loan.to_dict(),
            "new_schedule": [entry.to_dict() for entry in result.new_tail],
            "interest_saved": result.interest_saved,
            "event": result.event.to_dict(),
            "message": "Part-payment applied successfully"
        }

    except EmiEngineError as e:
        raise engine_error(e)


@router.post("/{loan_id}/foreclosure")
def apply_foreclosure(
    loan_id: str,
    request: ForeclosureRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Foreclose the loan by paying off the outstanding principal"""
    try:
        result = system.engine.apply_foreclosure(
            loan_id=loan_id,
            foreclosure_date=request.foreclosure_date,
            payment_method=system.payment_method(request.payment_method)
        )

        return {
            "loan": result.loan.to_dict(),
            "payoff_amount": result.payoff_amount,
            "interest_saved": result.interest_saved,
            "event": result.event.to_dict(),
            "message": "Loan foreclosed successfully"
        }

    except EmiEngineError as e:
        raise engine_error(e)


@router.post("/{loan_id}/compare")
def compare_terms(
    loan_id: str,
    request: CompareTermsRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Compare the remaining cost against alternative terms"""
    try:
        results = system.engine.compare_terms(
            loan_id,
            [alternative.to_term_set() for alternative in request.alternatives],
            as_of=request.as_of
        )
        return {"loan_id": loan_id, "comparisons": [comparison_to_dict(r) for r in results]}

    except EmiEngineError as e:
        raise engine_error(e)


@router.get("/{loan_id}/summary")
def get_summary(loan_id: str, system: EmiSystem = Depends(get_emi_system)):
    """Repayment progress and lifetime totals"""
    try:
        return summary_to_dict(system.engine.summarize(loan_id))
    except EmiEngineError as e:
        raise engine_error(e)


@router.get("/{loan_id}/events")
def get_events(loan_id: str, system: EmiSystem = Depends(get_emi_system)):
    """Part-payment and foreclosure history"""
    try:
        events = system.engine.get_events(loan_id)
        return {"loan_id": loan_id, "events": [event.to_dict() for event in events]}
    except EmiEngineError as e:
        raise engine_error(e)


@router.get("/{loan_id}/events/verify")
def verify_events(loan_id: str, system: EmiSystem = Depends(get_emi_system)):
    """Verify the loan's event hash chain"""
    try:
        return system.engine.verify_event_chain(loan_id)
    except EmiEngineError as e:
        raise engine_error(e)
