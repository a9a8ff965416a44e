from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..session import Session
from .deps import get_session

router = APIRouter()


@router.get("/healthz")
async def health_check(session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Health check endpoint that verifies gateway status"""

    gateway_status: Dict[str, Any] = {}
    for name, gateway in (("horizon", session.ledger), ("soroban", session.contract)):
        check = getattr(gateway, "health_check", None)
        gateway_status[name] = await check() if check is not None else {"status": "unknown"}

    all_healthy = all(status.get("status") == "healthy" for status in gateway_status.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "network": session.config.network,
        "gateways": gateway_status,
        "cache": session.cache.stats()["size"],
        "transactions": len(session.log),
    }
