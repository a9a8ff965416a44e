"""
Error Recovery Module

Classifies wallet, Horizon and Soroban failures into a user-facing taxonomy
and decides whether the user can retry.
"""

from .errors import (
    ContractErrorReason,
    RawError,
    RawErrorKind,
    WalletError,
    WalletErrorCode,
    get_error_label,
    is_recoverable,
    is_recoverable_error,
    parse_error,
    suggested_action,
)

__all__ = [
    "ContractErrorReason",
    "RawError",
    "RawErrorKind",
    "WalletError",
    "WalletErrorCode",
    "get_error_label",
    "is_recoverable",
    "is_recoverable_error",
    "parse_error",
    "suggested_action",
]
