from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..core.execution.validation import is_account_address
from ..core.swap.models import SwapDirection
from ..providers.base import GatewayError
from ..session import Session
from .deps import get_session


router = APIRouter()


class ReservesResponse(BaseModel):
    pool_id: str
    reserve_a: str
    reserve_b: str
    fee_bps: int
    total_shares: str


class QuoteResponse(BaseModel):
    direction: str
    amount_in: str
    amount_out: str
    min_amount_out: str
    fee_bps: int
    price_impact_bps: int
    slippage_percent: float


class BalancesResponse(BaseModel):
    address: str
    xlm: str
    tokens: Dict[str, str] = Field(default_factory=dict)


def _gateway_failure(exc: GatewayError) -> HTTPException:
    return HTTPException(status_code=502, detail=f"Upstream read failed: {exc.message}")


@router.get("/pool/reserves")
async def get_reserves(
    refresh: bool = False,
    session: Session = Depends(get_session),
) -> ReservesResponse:
    try:
        reserves = await session.pool.get_reserves(force_refresh=refresh)
    except GatewayError as exc:
        raise _gateway_failure(exc)
    # i128 values are returned as strings
    return ReservesResponse(
        pool_id=session.pool.pool_id,
        reserve_a=str(reserves.reserve_a),
        reserve_b=str(reserves.reserve_b),
        fee_bps=reserves.fee_bps,
        total_shares=str(reserves.total_shares),
    )


@router.get("/pool/quote")
async def get_quote(
    amount_in: int = Query(gt=0, description="Input amount in base units"),
    direction: SwapDirection = SwapDirection.A_TO_B,
    slippage_percent: Optional[float] = Query(default=None, ge=0, le=100),
    session: Session = Depends(get_session),
) -> QuoteResponse:
    try:
        quote = await session.pool.quote(direction, amount_in, slippage_percent)
    except GatewayError as exc:
        raise _gateway_failure(exc)
    return QuoteResponse(
        direction=quote.direction.value,
        amount_in=str(quote.amount_in),
        amount_out=str(quote.amount_out),
        min_amount_out=str(quote.min_amount_out),
        fee_bps=quote.fee_bps,
        price_impact_bps=quote.price_impact_bps,
        slippage_percent=quote.slippage_percent,
    )


@router.get("/balances/{address}")
async def get_balances(
    address: str,
    refresh: bool = False,
    session: Session = Depends(get_session),
) -> BalancesResponse:
    if not is_account_address(address):
        raise HTTPException(status_code=400, detail="Invalid Stellar address")
    if refresh:
        session.balances.refresh(address)

    try:
        xlm = await session.balances.get_native_balance(address)
        tokens = {
            token_id: str(await session.balances.get_token_balance(token_id, address))
            for token_id in session.balances.token_ids
        }
    except GatewayError as exc:
        raise _gateway_failure(exc)
    return BalancesResponse(address=address, xlm=f"{xlm:f}", tokens=tokens)


@router.get("/events")
async def get_events(session: Session = Depends(get_session)) -> Dict[str, Any]:
    events: List[Dict[str, Any]] = [event.to_dict() for event in session.events.events]
    return {"last_ledger": session.events.last_ledger, "events": events}


@router.get("/cache/stats")
async def get_cache_stats(session: Session = Depends(get_session)) -> Dict[str, Any]:
    return session.cache.stats()
