"""
Tests for local transaction input checks
"""

from decimal import Decimal

import pytest
from stellar_sdk import Keypair, StrKey

from stellar_swap.core.execution import TransactionValidationError
from stellar_swap.core.execution.validation import (
    check_spendable,
    is_account_address,
    is_contract_id,
    parse_xlm_amount,
    validate_contract_id,
    validate_minimum,
    validate_native_send,
    validate_positive_amount,
    validate_slippage,
)
from stellar_swap.core.recovery import WalletErrorCode


@pytest.fixture
def alice() -> str:
    return Keypair.random().public_key


@pytest.fixture
def bob() -> str:
    return Keypair.random().public_key


class TestAddresses:
    def test_account_address(self, alice):
        assert is_account_address(alice)
        assert not is_account_address("GNOTAKEY")
        assert not is_account_address("")

    def test_contract_id(self):
        contract_id = StrKey.encode_contract(b"\x07" * 32)
        assert is_contract_id(contract_id)
        assert validate_contract_id(contract_id) == contract_id

    def test_invalid_contract_id(self, alice):
        with pytest.raises(TransactionValidationError) as exc_info:
            validate_contract_id(alice)
        assert exc_info.value.code == WalletErrorCode.INVALID_ADDRESS


class TestNativeSend:
    def test_valid(self, alice, bob):
        recipient, amount = validate_native_send(alice, f"  {bob} ", "12.5")
        assert recipient == bob
        assert amount == Decimal("12.5")

    def test_not_connected(self, bob):
        with pytest.raises(TransactionValidationError) as exc_info:
            validate_native_send("", bob, "1")
        assert exc_info.value.code == WalletErrorCode.NOT_CONNECTED

    def test_recipient_required(self, alice):
        with pytest.raises(TransactionValidationError, match="Recipient address is required"):
            validate_native_send(alice, "", "1")

    def test_malformed_recipient(self, alice):
        with pytest.raises(TransactionValidationError, match="Invalid Stellar address"):
            validate_native_send(alice, "GABC", "1")

    def test_self_send(self, alice):
        with pytest.raises(TransactionValidationError, match="yourself"):
            validate_native_send(alice, alice, "1")


class TestAmounts:
    @pytest.mark.parametrize("raw", ["0", "-1", "abc", "", "NaN", True])
    def test_bad_xlm_amounts(self, raw):
        with pytest.raises(TransactionValidationError):
            parse_xlm_amount(raw)

    def test_too_many_decimals(self):
        with pytest.raises(TransactionValidationError, match="7 decimal places"):
            parse_xlm_amount("0.00000001")

    def test_trailing_zeros_allowed(self):
        assert parse_xlm_amount("1.50000000") == Decimal("1.5")

    def test_spendable_keeps_reserve(self):
        check_spendable(Decimal("9"), Decimal("10"), Decimal("1"))
        with pytest.raises(TransactionValidationError) as exc_info:
            check_spendable(Decimal("9.5"), Decimal("10"), Decimal("1"))
        assert exc_info.value.code == WalletErrorCode.INSUFFICIENT_BALANCE
        assert exc_info.value.message == "Insufficient balance (max: 9 XLM, keeping 1 XLM for fees)"

    def test_positive_contract_amount(self):
        assert validate_positive_amount("Amount", 5) == 5
        for bad in (0, -1, 1.5, "5"):
            with pytest.raises(TransactionValidationError):
                validate_positive_amount("Amount", bad)

    def test_minimum_may_be_zero(self):
        assert validate_minimum("Minimum", 0) == 0
        with pytest.raises(TransactionValidationError):
            validate_minimum("Minimum", -1)


class TestSlippage:
    @pytest.mark.parametrize("value", [0, 0.5, 100, Decimal("2.5")])
    def test_in_range(self, value):
        assert validate_slippage(value) == float(value)

    @pytest.mark.parametrize("value", [-5, 100.01, 150, float("nan"), "1", True])
    def test_out_of_range(self, value):
        with pytest.raises(TransactionValidationError, match="Slippage must be between 0 and 100%"):
            validate_slippage(value)
