"""Cache-backed read services and the contract event feed."""

from .balances import BalanceService
from .events import ContractEvent, EventFeed, EventType
from .pool import PoolService

__all__ = ["BalanceService", "ContractEvent", "EventFeed", "EventType", "PoolService"]
