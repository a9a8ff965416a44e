"""
Error Classification

Normalizes failures from Horizon, Soroban RPC and wallet signers into a single
taxonomy. The raw value is resolved once into a ``RawError`` and then matched
against ordered rules; the first rule that matches wins.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class WalletErrorCode(str, Enum):
    """Error taxonomy shown to wallet users."""

    WALLET_NOT_FOUND = "WALLET_NOT_FOUND"
    NOT_CONNECTED = "NOT_CONNECTED"
    TRANSACTION_REJECTED = "TRANSACTION_REJECTED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    NETWORK_MISMATCH = "NETWORK_MISMATCH"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    CONTRACT_ERROR = "CONTRACT_ERROR"
    UNKNOWN = "UNKNOWN"


class ContractErrorReason(str, Enum):
    """Sub-cases of CONTRACT_ERROR, each with its own recovery policy."""

    SLIPPAGE_EXCEEDED = "slippage_exceeded"
    NO_LIQUIDITY = "no_liquidity"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    INSUFFICIENT_TOKEN_BALANCE = "insufficient_token_balance"
    SIMULATION_FAILED = "simulation_failed"
    GENERIC = "generic"


@dataclass(frozen=True)
class WalletError:
    code: WalletErrorCode
    message: str
    details: str = ""
    reason: Optional[ContractErrorReason] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "reason": self.reason.value if self.reason else None,
        }


class RawErrorKind(str, Enum):
    CODED = "coded"
    TYPED = "typed"
    MESSAGE = "message"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RawError:
    """A failure value resolved into one explicit shape."""

    kind: RawErrorKind
    message: str = ""
    code: Optional[str] = None
    type: Optional[str] = None

    @classmethod
    def from_value(cls, raw: Any) -> "RawError":
        if raw is None:
            return cls(kind=RawErrorKind.UNKNOWN)
        if isinstance(raw, RawError):
            return raw
        if isinstance(raw, str):
            return cls(kind=RawErrorKind.MESSAGE, message=raw)

        if isinstance(raw, Mapping):
            code = raw.get("code")
            type_tag = raw.get("type")
            message = raw.get("message")
        elif isinstance(raw, BaseException):
            code = getattr(raw, "code", None)
            type_tag = getattr(raw, "type", None)
            message = getattr(raw, "message", None) or str(raw)
        else:
            code = getattr(raw, "code", None)
            type_tag = getattr(raw, "type", None)
            message = getattr(raw, "message", None)

        message = message if isinstance(message, str) else ""
        if code is not None and isinstance(code, (str, int)) and not isinstance(code, bool):
            return cls(kind=RawErrorKind.CODED, message=message, code=str(code).strip())
        if isinstance(type_tag, str) and type_tag:
            return cls(kind=RawErrorKind.TYPED, message=message, type=type_tag)
        if message:
            return cls(kind=RawErrorKind.MESSAGE, message=message)
        return cls(kind=RawErrorKind.UNKNOWN, message=_safe_repr(raw))


def _safe_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception:
        return f"<unprintable {type(value).__name__}>"


# Wallet-specific codes: -4 is a user rejection, -3 a network mismatch
CODE_TABLE: Dict[str, WalletErrorCode] = {
    "-4": WalletErrorCode.TRANSACTION_REJECTED,
    "4": WalletErrorCode.TRANSACTION_REJECTED,
    "-3": WalletErrorCode.NETWORK_MISMATCH,
    "3": WalletErrorCode.NETWORK_MISMATCH,
}

TYPE_TABLE: Dict[str, WalletErrorCode] = {
    "WALLET_NOT_FOUND": WalletErrorCode.WALLET_NOT_FOUND,
    "TRANSACTION_REJECTED": WalletErrorCode.TRANSACTION_REJECTED,
}

MESSAGE_RULES: List[Tuple[WalletErrorCode, Tuple[str, ...]]] = [
    (
        WalletErrorCode.WALLET_NOT_FOUND,
        (
            "wallet not found",
            "freighter not found",
            "freighter is not installed",
            "extension not found",
            "not installed",
            "wallet not available",
            "xbull not found",
            "no wallet detected",
            "wallet extension",
        ),
    ),
    (
        WalletErrorCode.TRANSACTION_REJECTED,
        (
            "user rejected",
            "user declined",
            "transaction rejected",
            "rejected by user",
            "user denied",
            "cancelled by user",
            "user cancelled",
            "request rejected",
            "declined",
            "user closed",
        ),
    ),
    (
        WalletErrorCode.INSUFFICIENT_BALANCE,
        (
            "insufficient balance",
            "insufficient funds",
            "not enough",
            "underfunded",
            "op_underfunded",
            "balance too low",
            "insufficient xlm",
            "below minimum",
            "tx_insufficient_balance",
        ),
    ),
    (
        WalletErrorCode.NETWORK_MISMATCH,
        (
            "network mismatch",
            "wrong network",
            "network does not match",
            "expected testnet",
            "expected mainnet",
            "network passphrase",
        ),
    ),
    (
        WalletErrorCode.CONTRACT_ERROR,
        (
            "contract error",
            "simulation failed",
            "invoke host function",
            "invoke_host",
            "soroban",
            "wasm",
            "slippage exceeded",
            "pool has no liquidity",
            "insufficient allowance",
            "insufficient shares",
        ),
    ),
]

CONTRACT_REASON_RULES: List[Tuple[ContractErrorReason, Tuple[str, ...]]] = [
    (ContractErrorReason.SLIPPAGE_EXCEEDED, ("slippage exceeded", "slippage")),
    (ContractErrorReason.NO_LIQUIDITY, ("pool has no liquidity", "no liquidity")),
    (ContractErrorReason.INSUFFICIENT_ALLOWANCE, ("insufficient allowance",)),
    (ContractErrorReason.INSUFFICIENT_TOKEN_BALANCE, ("insufficient token balance", "balance is not sufficient")),
    (ContractErrorReason.SIMULATION_FAILED, ("simulation failed",)),
]

MESSAGES: Dict[WalletErrorCode, str] = {
    WalletErrorCode.WALLET_NOT_FOUND: "No Stellar wallet was found. Install Freighter or another Stellar wallet and reload.",
    WalletErrorCode.NOT_CONNECTED: "Wallet is not connected. Connect a wallet to continue.",
    WalletErrorCode.TRANSACTION_REJECTED: "The transaction was rejected in your wallet.",
    WalletErrorCode.INSUFFICIENT_BALANCE: "Insufficient balance to complete this transaction.",
    WalletErrorCode.NETWORK_MISMATCH: "Your wallet is on a different network. Switch networks and try again.",
    WalletErrorCode.INVALID_ADDRESS: "The address is not a valid Stellar address.",
    WalletErrorCode.CONTRACT_ERROR: "The contract call failed.",
    WalletErrorCode.UNKNOWN: "Something went wrong. Please try again.",
}

CONTRACT_MESSAGES: Dict[ContractErrorReason, str] = {
    ContractErrorReason.SLIPPAGE_EXCEEDED: "Price moved beyond your slippage tolerance. Increase slippage or try again.",
    ContractErrorReason.NO_LIQUIDITY: "The pool has no liquidity yet.",
    ContractErrorReason.INSUFFICIENT_ALLOWANCE: "Token allowance is too low for this operation.",
    ContractErrorReason.INSUFFICIENT_TOKEN_BALANCE: "Insufficient token balance for this operation.",
    ContractErrorReason.SIMULATION_FAILED: "The transaction failed during simulation.",
    ContractErrorReason.GENERIC: MESSAGES[WalletErrorCode.CONTRACT_ERROR],
}

LABELS: Dict[WalletErrorCode, str] = {
    WalletErrorCode.WALLET_NOT_FOUND: "Wallet Not Found",
    WalletErrorCode.NOT_CONNECTED: "Not Connected",
    WalletErrorCode.TRANSACTION_REJECTED: "Rejected",
    WalletErrorCode.INSUFFICIENT_BALANCE: "Insufficient Balance",
    WalletErrorCode.NETWORK_MISMATCH: "Wrong Network",
    WalletErrorCode.INVALID_ADDRESS: "Invalid Address",
    WalletErrorCode.CONTRACT_ERROR: "Contract Error",
    WalletErrorCode.UNKNOWN: "Error",
}

RECOVERABLE_CODES = frozenset({
    WalletErrorCode.TRANSACTION_REJECTED,
    WalletErrorCode.INSUFFICIENT_BALANCE,
    WalletErrorCode.UNKNOWN,
})

RECOVERABLE_CONTRACT_REASONS = frozenset({ContractErrorReason.SLIPPAGE_EXCEEDED})

SUGGESTED_ACTIONS: Dict[WalletErrorCode, str] = {
    WalletErrorCode.WALLET_NOT_FOUND: "Install a Stellar wallet extension",
    WalletErrorCode.NOT_CONNECTED: "Connect your wallet",
    WalletErrorCode.TRANSACTION_REJECTED: "Approve the transaction in your wallet to retry",
    WalletErrorCode.INSUFFICIENT_BALANCE: "Add funds or lower the amount",
    WalletErrorCode.NETWORK_MISMATCH: "Switch your wallet to the app network",
    WalletErrorCode.INVALID_ADDRESS: "Check the address and try again",
    WalletErrorCode.CONTRACT_ERROR: "Review the contract call parameters",
    WalletErrorCode.UNKNOWN: "Try again",
}


def _match_message(message: str) -> Optional[WalletErrorCode]:
    lowered = message.lower()
    for code, patterns in MESSAGE_RULES:
        if any(p in lowered for p in patterns):
            return code
    return None


def _contract_reason(message: str) -> ContractErrorReason:
    lowered = message.lower()
    for reason, patterns in CONTRACT_REASON_RULES:
        if any(p in lowered for p in patterns):
            return reason
    return ContractErrorReason.GENERIC


def _build(code: WalletErrorCode, details: str) -> WalletError:
    if code == WalletErrorCode.CONTRACT_ERROR:
        reason = _contract_reason(details)
        return WalletError(code=code, message=CONTRACT_MESSAGES[reason], details=details, reason=reason)
    return WalletError(code=code, message=MESSAGES[code], details=details)


def classify(raw: RawError) -> WalletError:
    """Classify an already-resolved error."""
    if raw.kind == RawErrorKind.CODED:
        code = CODE_TABLE.get(raw.code or "")
        if code is not None:
            return _build(code, raw.message or f"code {raw.code}")
    elif raw.kind == RawErrorKind.TYPED:
        code = TYPE_TABLE.get((raw.type or "").upper())
        if code is not None:
            return _build(code, raw.message or raw.type or "")
        if not raw.message:
            matched = _match_message(raw.type or "")
            return _build(matched or WalletErrorCode.UNKNOWN, raw.type or "")

    if raw.kind != RawErrorKind.UNKNOWN and raw.message:
        matched = _match_message(raw.message)
        if matched is not None:
            return _build(matched, raw.message)

    details = raw.message
    if raw.kind == RawErrorKind.CODED and not details:
        details = f"code {raw.code}"
    return WalletError(code=WalletErrorCode.UNKNOWN, message=MESSAGES[WalletErrorCode.UNKNOWN], details=details)


def parse_error(raw: Any) -> WalletError:
    """
    Normalize any failure value into a WalletError.

    Accepts strings, exceptions, mappings or objects with ``code``/``type``/``message``
    and anything else. Never raises.
    """
    try:
        return classify(RawError.from_value(raw))
    except Exception as exc:
        return WalletError(
            code=WalletErrorCode.UNKNOWN,
            message=MESSAGES[WalletErrorCode.UNKNOWN],
            details=f"unclassifiable error: {type(exc).__name__}",
        )


def get_error_label(code: WalletErrorCode) -> str:
    return LABELS.get(code, LABELS[WalletErrorCode.UNKNOWN])


def is_recoverable_error(code: WalletErrorCode) -> bool:
    """Category-level policy: can the user retry without outside remediation?"""
    return code in RECOVERABLE_CODES


def is_recoverable(error: WalletError) -> bool:
    """Per-error policy. Contract errors are decided by sub-case."""
    if error.code == WalletErrorCode.CONTRACT_ERROR:
        return error.reason in RECOVERABLE_CONTRACT_REASONS
    return is_recoverable_error(error.code)


def suggested_action(error: WalletError) -> str:
    if error.reason == ContractErrorReason.SLIPPAGE_EXCEEDED:
        return "Increase slippage tolerance and resubmit"
    if error.reason == ContractErrorReason.INSUFFICIENT_ALLOWANCE:
        return "Approve a larger token allowance"
    return SUGGESTED_ACTIONS.get(error.code, SUGGESTED_ACTIONS[WalletErrorCode.UNKNOWN])
