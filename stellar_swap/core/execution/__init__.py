"""
Transaction Execution Module

Builds, signs, submits and confirms Stellar transactions, keeping a bounded
log of their lifecycle.
"""

from .log import TransactionLog
from .manager import TransactionManager
from .models import (
    ConfirmationTimeoutError,
    ExecutionError,
    InvalidTransitionError,
    Transaction,
    TransactionFailedError,
    TransactionKind,
    TransactionOutcome,
    TransactionStatus,
    TransactionValidationError,
)

__all__ = [
    "ConfirmationTimeoutError",
    "ExecutionError",
    "InvalidTransitionError",
    "Transaction",
    "TransactionFailedError",
    "TransactionKind",
    "TransactionLog",
    "TransactionManager",
    "TransactionOutcome",
    "TransactionStatus",
    "TransactionValidationError",
]
