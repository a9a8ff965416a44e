"""Polling feed of pool and token contract events."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set

from ..providers.base import ContractEventRecord, ContractGateway, GatewayError

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    SWAP = "swap"
    ADD_LIQUIDITY = "add_liquidity"
    REMOVE_LIQUIDITY = "remove_liquidity"
    TRANSFER = "transfer"
    MINT = "mint"
    BURN = "burn"
    APPROVE = "approve"


# First topic symbol published by the pool and token contracts
TOPIC_TYPES: Dict[str, EventType] = {
    "swap": EventType.SWAP,
    "add_liq": EventType.ADD_LIQUIDITY,
    "rem_liq": EventType.REMOVE_LIQUIDITY,
    "transfer": EventType.TRANSFER,
    "mint": EventType.MINT,
    "burn": EventType.BURN,
    "approve": EventType.APPROVE,
}


@dataclass
class ContractEvent:
    id: str
    type: EventType
    tx_hash: str
    ledger: int
    contract_id: str
    topics: List[Any] = field(default_factory=list)
    data: Any = None
    ledger_closed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "tx_hash": self.tx_hash,
            "ledger": self.ledger,
            "contract_id": self.contract_id,
            "topics": _jsonable(self.topics),
            "data": _jsonable(self.data),
            "ledger_closed_at": self.ledger_closed_at,
        }


def _jsonable(value: Any) -> Any:
    # i128 amounts exceed JSON-safe integers
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def parse_event(record: ContractEventRecord) -> Optional[ContractEvent]:
    """Typed event for a raw record, or None when the first topic is not a known event."""
    if not record.topics:
        return None
    event_type = TOPIC_TYPES.get(str(record.topics[0]))
    if event_type is None:
        return None
    return ContractEvent(
        id=f"{record.tx_hash}-{record.id}",
        type=event_type,
        tx_hash=record.tx_hash,
        ledger=record.ledger,
        contract_id=record.contract_id,
        topics=list(record.topics[1:]),
        data=record.value,
        ledger_closed_at=record.ledger_closed_at,
    )


class EventFeed:
    """
    Incrementally fetches contract events, newest first.

    The first poll starts ``lookback`` ledgers behind the latest ledger; each
    later poll resumes one ledger past the highest ledger seen.
    """

    def __init__(
        self,
        contract: ContractGateway,
        contract_ids: Sequence[str],
        limit: int = 50,
        lookback: int = 100,
    ) -> None:
        self.contract = contract
        self.contract_ids = [c for c in contract_ids if c]
        self.limit = limit
        self.lookback = lookback
        self.last_ledger: Optional[int] = None
        self._cursor: Optional[int] = None
        self._events: List[ContractEvent] = []
        self._seen: Set[str] = set()

    @property
    def events(self) -> List[ContractEvent]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()
        self._seen.clear()

    async def poll(self) -> List[ContractEvent]:
        """Fetch events since the last poll. Returns only events not seen before."""
        if not self.contract_ids:
            return []
        if self._cursor is None:
            latest = await self.contract.get_latest_ledger()
            self._cursor = max(1, latest - self.lookback)

        records = await self.contract.get_events(self._cursor, self.contract_ids, self.limit)
        if not records:
            return []

        max_ledger = max(r.ledger for r in records)
        if max_ledger >= self._cursor:
            self._cursor = max_ledger + 1
            self.last_ledger = max_ledger

        fresh: List[ContractEvent] = []
        for record in records:
            event = parse_event(record)
            if event is None or event.id in self._seen:
                continue
            self._seen.add(event.id)
            fresh.append(event)

        fresh.sort(key=lambda e: e.ledger, reverse=True)
        self._events = (fresh + self._events)[: self.limit]
        self._seen = {e.id for e in self._events} | {e.id for e in fresh}
        return fresh

    async def run(self, stop: asyncio.Event, interval: float = 8.0) -> None:
        """Poll until ``stop`` is set. Any poll failure is logged and retried next tick."""
        while not stop.is_set():
            try:
                fresh = await self.poll()
                if fresh:
                    logger.info("event feed received %d events up to ledger %s", len(fresh), self.last_ledger)
            except GatewayError as exc:
                logger.warning("event feed poll failed: %s", exc)
            except Exception as exc:
                logger.error("event feed poll error: %s", exc, exc_info=True)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
