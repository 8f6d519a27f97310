"""
Engine wiring and request dependencies
"""

from typing import Optional
from fastapi import HTTPException, status

from ..config import get_config
from ..currency import Currency
from ..exceptions import (
    ConcurrentModification, EmiEngineError, EntryNotFound, LoanClosed, NothingToForeclose,
    OutOfOrderPayment
)
from ..ledger import EventLedger
from ..loans import LoanEngine
from ..storage import StorageInterface, create_storage
from ..store import ScheduleStore


class EmiSystem:
    """EMI engine with storage, schedule store and event ledger initialized"""

    def __init__(self, database_url: Optional[str] = None, storage: Optional[StorageInterface] = None):
        config = get_config()
        self.storage = storage or create_storage(
            database_url or config.database_url, timeout=config.database_timeout
        )
        self.store = ScheduleStore(self.storage)
        self.ledger = EventLedger(self.storage, hash_chain=config.enable_event_hash_chain)
        self.engine = LoanEngine(
            self.store,
            self.ledger,
            max_tenure_months=config.max_tenure_months,
            default_currency=Currency[config.default_currency.upper()]
        )
        self.default_payment_method = config.default_payment_method

    def payment_method(self, value: Optional[str]) -> str:
        return value or self.default_payment_method


# Global system instance, created on first use
_emi_system: Optional[EmiSystem] = None


def get_emi_system() -> EmiSystem:
    global _emi_system
    if _emi_system is None:
        _emi_system = EmiSystem()
    return _emi_system


def engine_error(e: EmiEngineError) -> HTTPException:
    """Map an engine error onto the HTTP status the API reports for it"""
    if isinstance(e, EntryNotFound):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, (LoanClosed, NothingToForeclose, OutOfOrderPayment,
                        ConcurrentModification)):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(
        status_code=status_code,
        detail={
            "error": type(e).__name__,
            "message": str(e),
            "retryable": e.retryable
        }
    )
