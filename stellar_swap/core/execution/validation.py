"""
Local input checks run before any transaction is built.

Failures raise TransactionValidationError with a message meant for the user;
nothing here touches the network.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Tuple

from stellar_sdk import StrKey

from ..recovery.errors import WalletErrorCode
from .models import TransactionValidationError


XLM_DECIMALS = 7


def require_connected(source: str) -> None:
    if not source:
        raise TransactionValidationError("Wallet not connected", code=WalletErrorCode.NOT_CONNECTED)


def is_account_address(address: str) -> bool:
    return bool(address) and StrKey.is_valid_ed25519_public_key(address)


def is_contract_id(contract_id: str) -> bool:
    return bool(contract_id) and StrKey.is_valid_contract(contract_id)


def validate_account_address(address: str, label: str = "Address") -> str:
    address = (address or "").strip()
    if not address:
        raise TransactionValidationError(f"{label} is required", code=WalletErrorCode.INVALID_ADDRESS)
    if not is_account_address(address):
        raise TransactionValidationError("Invalid Stellar address", code=WalletErrorCode.INVALID_ADDRESS)
    return address


def validate_contract_id(contract_id: str) -> str:
    contract_id = (contract_id or "").strip()
    if not is_contract_id(contract_id):
        raise TransactionValidationError("Invalid contract address", code=WalletErrorCode.INVALID_ADDRESS)
    return contract_id


def parse_xlm_amount(amount: Any) -> Decimal:
    """Parse a user-entered XLM amount. Must be positive with at most 7 decimals."""
    if isinstance(amount, bool):
        raise TransactionValidationError("Enter a valid amount")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise TransactionValidationError("Enter a valid amount")
    if not value.is_finite():
        raise TransactionValidationError("Enter a valid amount")
    if value <= 0:
        raise TransactionValidationError("Amount must be greater than 0")
    if value.normalize().as_tuple().exponent < -XLM_DECIMALS:
        raise TransactionValidationError(f"XLM amounts support at most {XLM_DECIMALS} decimal places")
    return value


def validate_positive_amount(name: str, value: Any) -> int:
    """Contract amounts are integers in the token's smallest unit."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TransactionValidationError(f"{name} must be a whole number of base units")
    if value <= 0:
        raise TransactionValidationError(f"{name} must be greater than 0")
    return value


def validate_minimum(name: str, value: Any) -> int:
    """Slippage guards may be zero but never negative."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise TransactionValidationError(f"{name} must be a non-negative whole number of base units")
    return value


def validate_native_send(source: str, recipient: str, amount: Any) -> Tuple[str, Decimal]:
    """Checks that need no balance: connection, recipient and amount shape."""
    require_connected(source)
    recipient = validate_account_address(recipient, label="Recipient address")
    if recipient == source:
        raise TransactionValidationError("Cannot send to yourself", code=WalletErrorCode.INVALID_ADDRESS)
    return recipient, parse_xlm_amount(amount)


def check_spendable(amount: Decimal, balance: Decimal, reserve: Decimal) -> None:
    """Native sends must leave ``reserve`` XLM behind."""
    spendable = max(Decimal(0), balance - reserve)
    if amount > spendable:
        raise TransactionValidationError(
            f"Insufficient balance (max: {spendable.normalize():f} XLM, keeping {reserve.normalize():f} XLM for fees)",
            code=WalletErrorCode.INSUFFICIENT_BALANCE,
        )


def validate_slippage(value: Any) -> float:
    """Slippage tolerance is a percentage in [0, 100]."""
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float, Decimal))
        or (isinstance(value, Decimal) and not value.is_finite())
        or not 0 <= value <= 100
    ):
        raise TransactionValidationError("Slippage must be between 0 and 100%")
    return float(value)
