"""
Transaction lifecycle models and exceptions.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..recovery.errors import ContractErrorReason, WalletErrorCode


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionKind(str, Enum):
    """Operations the lifecycle manager can drive."""
    SEND_XLM = "send_xlm"
    SWAP = "swap"
    ADD_LIQUIDITY = "add_liquidity"
    REMOVE_LIQUIDITY = "remove_liquidity"
    CONTRACT_CALL = "contract_call"


class TransactionStatus(str, Enum):
    """Lifecycle state. Created in BUILDING; SUCCESS and ERROR are terminal."""
    BUILDING = "building"
    SIGNING = "signing"
    SUBMITTING = "submitting"
    PENDING = "pending"          # Broadcast, hash known, awaiting inclusion
    SUCCESS = "success"
    ERROR = "error"


class TransactionOutcome(str, Enum):
    """What is known about the transaction once it is terminal."""
    CONFIRMED = "confirmed"              # Included and successful
    FAILED_ON_CHAIN = "failed_on_chain"  # Included and failed
    REJECTED = "rejected"                # Never broadcast (validation, build, sign, submit)
    UNKNOWN = "unknown"                  # Possibly broadcast, never seen in a ledger


TERMINAL_STATUSES = frozenset({TransactionStatus.SUCCESS, TransactionStatus.ERROR})


@dataclass
class Transaction:
    """One user-initiated operation, tracked from build to settlement."""
    id: str
    kind: TransactionKind
    source: str
    status: TransactionStatus = TransactionStatus.BUILDING

    # Operation fields (set per kind)
    recipient: Optional[str] = None
    amount: Optional[Decimal] = None            # XLM, for native sends
    contract_id: Optional[str] = None
    function_name: Optional[str] = None
    direction: Optional[str] = None
    amount_in: Optional[int] = None
    amount_out: Optional[int] = None            # Quoted output for swaps
    min_amount_out: Optional[int] = None
    amount_a: Optional[int] = None
    amount_b: Optional[int] = None
    shares: Optional[int] = None

    # Settlement
    hash: Optional[str] = None
    ledger_seq: Optional[int] = None
    outcome: Optional[TransactionOutcome] = None
    error_message: Optional[str] = None
    error_code: Optional[WalletErrorCode] = None
    error_details: Optional[str] = None
    error_reason: Optional[ContractErrorReason] = None   # Contract error sub-case

    # Cache prefixes invalidated on success
    scopes: Tuple[str, ...] = ()

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "source": self.source,
            "recipient": self.recipient,
            "amount": str(self.amount) if self.amount is not None else None,
            "contract_id": self.contract_id,
            "function_name": self.function_name,
            "direction": self.direction,
            "amount_in": self.amount_in,
            "amount_out": self.amount_out,
            "min_amount_out": self.min_amount_out,
            "amount_a": self.amount_a,
            "amount_b": self.amount_b,
            "shares": self.shares,
            "hash": self.hash,
            "ledger_seq": self.ledger_seq,
            "outcome": self.outcome.value if self.outcome else None,
            "error_message": self.error_message,
            "error_code": self.error_code.value if self.error_code else None,
            "error_reason": self.error_reason.value if self.error_reason else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class ExecutionError(Exception):
    """Base exception for lifecycle errors."""

    def __init__(self, message: str, tx_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.tx_id = tx_id


class TransactionValidationError(ExecutionError):
    """Input rejected locally before any network call."""

    def __init__(
        self,
        message: str,
        code: WalletErrorCode = WalletErrorCode.UNKNOWN,
        tx_id: Optional[str] = None,
    ):
        super().__init__(message, tx_id=tx_id)
        self.code = code


class TransactionFailedError(ExecutionError):
    """Transaction was included in a ledger and failed."""

    def __init__(self, message: str, tx_hash: str, tx_id: Optional[str] = None):
        super().__init__(message, tx_id=tx_id)
        self.tx_hash = tx_hash


class ConfirmationTimeoutError(ExecutionError):
    """Polling ran out before the transaction's outcome was known."""

    def __init__(self, message: str, tx_hash: str, attempts: int, tx_id: Optional[str] = None):
        super().__init__(message, tx_id=tx_id)
        self.tx_hash = tx_hash
        self.attempts = attempts


class InvalidTransitionError(ExecutionError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, from_status: TransactionStatus, to_status: TransactionStatus, tx_id: Optional[str] = None):
        super().__init__(
            f"Invalid transition from {from_status.value} to {to_status.value}",
            tx_id=tx_id,
        )
        self.from_status = from_status
        self.to_status = to_status

