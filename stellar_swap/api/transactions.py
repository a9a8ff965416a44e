from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..core.execution.models import Transaction
from ..core.recovery.errors import WalletError, get_error_label, is_recoverable, suggested_action
from ..session import Session
from .deps import get_session


router = APIRouter(prefix="/transactions")


class TransactionView(BaseModel):
    id: str
    kind: str
    status: str
    source: str
    recipient: Optional[str] = None
    amount: Optional[str] = None
    contract_id: Optional[str] = None
    function_name: Optional[str] = None
    direction: Optional[str] = None
    amount_in: Optional[int] = None
    amount_out: Optional[int] = None
    min_amount_out: Optional[int] = None
    amount_a: Optional[int] = None
    amount_b: Optional[int] = None
    shares: Optional[int] = None
    hash: Optional[str] = None
    ledger_seq: Optional[int] = None
    outcome: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    error_reason: Optional[str] = None
    error_label: Optional[str] = None
    recoverable: Optional[bool] = None
    suggested_action: Optional[str] = None
    created_at: str
    updated_at: str


def _view(tx: Transaction) -> TransactionView:
    data = tx.to_dict()
    if tx.error_code is not None:
        error = WalletError(
            code=tx.error_code,
            message=tx.error_message or "",
            details=tx.error_details or "",
            reason=tx.error_reason,
        )
        data["error_label"] = get_error_label(error.code)
        data["recoverable"] = is_recoverable(error)
        data["suggested_action"] = suggested_action(error)
    return TransactionView(**data)


@router.get("")
async def list_transactions(session: Session = Depends(get_session)) -> List[TransactionView]:
    """Transaction log, newest first."""
    return [_view(tx) for tx in session.log.transactions]


@router.get("/active")
async def get_active_transaction(session: Session = Depends(get_session)) -> Optional[TransactionView]:
    tx = session.log.active
    return _view(tx) if tx is not None else None


@router.get("/{tx_id}")
async def get_transaction(tx_id: str, session: Session = Depends(get_session)) -> TransactionView:
    tx = session.log.get(tx_id)
    if tx is None:
        raise HTTPException(status_code=404, detail=f"Transaction {tx_id} not found")
    return _view(tx)


@router.delete("")
async def clear_transactions(session: Session = Depends(get_session)) -> Dict[str, Any]:
    cleared = len(session.log)
    session.log.clear()
    return {"cleared": cleared}
