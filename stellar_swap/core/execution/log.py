"""
Bounded, newest-first history of transactions.
"""

import copy
import logging
from dataclasses import fields
from typing import Any, Dict, List, Optional

from .models import Transaction, _utcnow


logger = logging.getLogger(__name__)

_FIELD_NAMES = frozenset(f.name for f in fields(Transaction))


class TransactionLog:
    """
    Keeps the most recent transactions, newest first.

    When capacity is exceeded the oldest entry is evicted. ``active`` is the
    most recently added transaction and is always a member of the log or None.
    """

    def __init__(self, capacity: int = 50):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: List[Transaction] = []
        self._index: Dict[str, Transaction] = {}
        self._active_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._index

    def add(self, tx: Transaction) -> None:
        if tx.id in self._index:
            raise ValueError(f"Transaction {tx.id} already logged")
        self._entries.insert(0, tx)
        self._index[tx.id] = tx
        self._active_id = tx.id

        while len(self._entries) > self.capacity:
            evicted = self._entries.pop()
            del self._index[evicted.id]
            logger.debug("evicted transaction %s from log", evicted.id)

    def update(self, tx_id: str, **changes: Any) -> Optional[Transaction]:
        """Apply ``changes`` to the logged transaction in place. None if it is not logged."""
        unknown = set(changes) - _FIELD_NAMES
        if unknown:
            raise ValueError(f"Unknown transaction fields: {sorted(unknown)}")

        tx = self._index.get(tx_id)
        if tx is None:
            return None
        for name, value in changes.items():
            setattr(tx, name, value)
        tx.updated_at = _utcnow()
        return tx

    def get(self, tx_id: str) -> Optional[Transaction]:
        tx = self._index.get(tx_id)
        return copy.copy(tx) if tx is not None else None

    @property
    def transactions(self) -> List[Transaction]:
        """Snapshot of the log, newest first."""
        return [copy.copy(tx) for tx in self._entries]

    @property
    def active(self) -> Optional[Transaction]:
        if self._active_id is None:
            return None
        tx = self._index.get(self._active_id)
        return copy.copy(tx) if tx is not None else None

    def clear(self) -> None:
        self._entries.clear()
        self._index.clear()
        self._active_id = None
