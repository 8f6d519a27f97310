"""
Installment payment endpoints
"""

from fastapi import APIRouter, Depends

from .deps import EmiSystem, engine_error, get_emi_system
from .schemas import BulkMarkPaidRequest, MarkPaidRequest
from ..exceptions import EmiEngineError


router = APIRouter()


@router.post("/bulk-pay")
def mark_paid_bulk(
    request: BulkMarkPaidRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Mark several installments paid"""
    try:
        entries = system.engine.mark_paid_bulk(
            request.entry_ids, request.paid_date, system.payment_method(request.payment_method)
        )
        return {"entries": [entry.to_dict() for entry in entries], "count": len(entries)}

    except EmiEngineError as e:
        raise engine_error(e)


@router.post("/{entry_id}/pay")
def mark_paid(
    entry_id: str,
    request: MarkPaidRequest,
    system: EmiSystem = Depends(get_emi_system)
):
    """Mark an installment paid; paying a paid entry returns it unchanged"""
    try:
        entry = system.engine.mark_paid(
            entry_id, request.paid_date, system.payment_method(request.payment_method)
        )
        loan = system.engine.get_loan(entry.loan_id)
        return {"entry": entry.to_dict(), "loan_status": loan.status.value}

    except EmiEngineError as e:
        raise engine_error(e)
