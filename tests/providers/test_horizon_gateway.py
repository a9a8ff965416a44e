"""
Tests for the Horizon ledger gateway

Requests are answered by an httpx MockTransport; no network access.
"""

from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest
from stellar_sdk import Keypair, TextMemo, TransactionEnvelope

from stellar_swap.config import NETWORKS
from stellar_swap.providers import (
    AccountNotFoundError,
    CallbackSigner,
    HorizonError,
    HorizonGateway,
    KeypairSigner,
    LookupStatus,
    SubmitError,
    SubmitTimeoutError,
)


PASSPHRASE = NETWORKS["TESTNET"]["passphrase"]


def make_gateway(handler) -> HorizonGateway:
    return HorizonGateway(
        base_url="https://horizon.test",
        network_passphrase=PASSPHRASE,
        base_fee=100,
        tx_timeout_seconds=60,
        timeout_s=5,
        transport=httpx.MockTransport(handler),
    )


def account_body(sequence: str = "4242", native: str = "99.5000000") -> dict:
    return {
        "sequence": sequence,
        "balances": [
            {"asset_type": "credit_alphanum4", "asset_code": "USDC", "balance": "5.0000000"},
            {"asset_type": "native", "balance": native},
        ],
    }


async def signed_payment(destination: str) -> str:
    keypair = Keypair.random()
    builder = make_gateway(lambda request: httpx.Response(200, json=account_body()))
    unsigned = await builder.build_native_payment(keypair.public_key, destination, Decimal("1"))
    return await KeypairSigner(keypair.secret).sign(unsigned, PASSPHRASE)


@pytest.fixture
def alice() -> str:
    return Keypair.random().public_key


@pytest.fixture
def bob() -> str:
    return Keypair.random().public_key


# =============================================================================
# Accounts
# =============================================================================

class TestLoadAccount:
    @pytest.mark.asyncio
    async def test_native_balance_and_sequence(self, alice):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/accounts/{alice}"
            return httpx.Response(200, json=account_body())

        gateway = make_gateway(handler)
        account = await gateway.load_account(alice)
        await gateway.close()

        assert account.sequence == 4242
        assert account.native_balance == Decimal("99.5")
        assert len(account.balances) == 2

    @pytest.mark.asyncio
    async def test_missing_account(self, alice):
        gateway = make_gateway(lambda request: httpx.Response(404, json={"title": "Resource Missing"}))
        with pytest.raises(AccountNotFoundError):
            await gateway.load_account(alice)

    @pytest.mark.asyncio
    async def test_server_error_carries_status(self, alice):
        gateway = make_gateway(lambda request: httpx.Response(503, json={"detail": "Horizon is overloaded"}))
        with pytest.raises(HorizonError) as exc_info:
            await gateway.load_account(alice)
        assert exc_info.value.status_code == 503
        assert "overloaded" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_error_is_wrapped(self, alice):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = make_gateway(handler)
        with pytest.raises(HorizonError, match="Horizon request failed"):
            await gateway.load_account(alice)


# =============================================================================
# Building and submitting
# =============================================================================

class TestPayments:
    @pytest.mark.asyncio
    async def test_build_native_payment(self, alice, bob):
        gateway = make_gateway(lambda request: httpx.Response(200, json=account_body(sequence="10")))

        envelope_xdr = await gateway.build_native_payment(alice, bob, Decimal("12.5"), memo="rent")

        envelope = TransactionEnvelope.from_xdr(envelope_xdr, PASSPHRASE)
        tx = envelope.transaction
        payment = tx.operations[0]
        assert tx.sequence == 11
        assert tx.fee == 100
        assert payment.destination.account_id == bob
        assert payment.asset.is_native()
        assert Decimal(payment.amount) == Decimal("12.5")
        assert isinstance(tx.memo, TextMemo)
        assert envelope.signatures == []

    @pytest.mark.asyncio
    async def test_submit_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"hash": "abc", "ledger": 321, "successful": True})

        gateway = make_gateway(handler)
        result = await gateway.submit("SIGNED-XDR")

        assert seen["form"] == {"tx": ["SIGNED-XDR"]}
        assert result.hash == "abc"
        assert result.ledger == 321
        assert result.successful is True

    @pytest.mark.asyncio
    async def test_submit_failure_lists_result_codes(self):
        body = {
            "title": "Transaction Failed",
            "extras": {
                "hash": "deadbeef",
                "result_codes": {"transaction": "tx_failed", "operations": ["op_underfunded"]},
            },
        }
        gateway = make_gateway(lambda request: httpx.Response(400, json=body))

        with pytest.raises(SubmitError) as exc_info:
            await gateway.submit("SIGNED-XDR")

        assert exc_info.value.message == "Transaction submit failed: tx_failed, op_underfunded"
        assert exc_info.value.tx_hash == "deadbeef"
        assert exc_info.value.result_codes["transaction"] == "tx_failed"

    @pytest.mark.asyncio
    async def test_submit_failure_without_codes(self):
        gateway = make_gateway(lambda request: httpx.Response(500, text="internal error"))
        with pytest.raises(SubmitError, match="HTTP 500") as exc_info:
            await gateway.submit("SIGNED-XDR")
        assert not isinstance(exc_info.value, SubmitTimeoutError)
        assert exc_info.value.tx_hash is None

    @pytest.mark.asyncio
    async def test_submit_gateway_timeout_carries_local_hash(self, bob):
        signed = await signed_payment(bob)

        gateway = make_gateway(lambda request: httpx.Response(504, json={"title": "Timeout"}))
        with pytest.raises(SubmitTimeoutError) as exc_info:
            await gateway.submit(signed)

        expected = TransactionEnvelope.from_xdr(signed, PASSPHRASE).hash_hex()
        assert exc_info.value.tx_hash == expected
        assert "HTTP 504" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_submit_read_timeout_carries_local_hash(self, bob):
        signed = await signed_payment(bob)

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        gateway = make_gateway(handler)
        with pytest.raises(SubmitTimeoutError) as exc_info:
            await gateway.submit(signed)

        assert exc_info.value.tx_hash == TransactionEnvelope.from_xdr(signed, PASSPHRASE).hash_hex()

    @pytest.mark.asyncio
    async def test_submit_connect_failure_is_not_ambiguous(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = make_gateway(handler)
        with pytest.raises(HorizonError, match="Horizon request failed"):
            await gateway.submit("SIGNED-XDR")


class TestSigners:
    @pytest.mark.asyncio
    async def test_keypair_signer_adds_signature(self, bob):
        keypair = Keypair.random()
        gateway = make_gateway(lambda request: httpx.Response(200, json=account_body()))
        unsigned = await gateway.build_native_payment(keypair.public_key, bob, Decimal("1"))

        signed = await KeypairSigner(keypair.secret).sign(unsigned, PASSPHRASE)

        envelope = TransactionEnvelope.from_xdr(signed, PASSPHRASE)
        assert len(envelope.signatures) == 1
        keypair.verify(envelope.hash(), envelope.signatures[0].signature)

    @pytest.mark.asyncio
    async def test_callback_signer(self):
        async def wallet(envelope, passphrase):
            return f"{envelope}|{passphrase}"

        assert await CallbackSigner(wallet).sign("XDR", "net") == "XDR|net"


# =============================================================================
# Lookups and health
# =============================================================================

class TestLookups:
    @pytest.mark.asyncio
    async def test_not_found(self):
        gateway = make_gateway(lambda request: httpx.Response(404, json={}))
        assert (await gateway.get_transaction("abc")).status == LookupStatus.NOT_FOUND

    @pytest.mark.asyncio
    @pytest.mark.parametrize("successful,status", [(True, LookupStatus.SUCCESS), (False, LookupStatus.FAILED)])
    async def test_settled(self, successful, status):
        body = {"successful": successful, "ledger": 99, "result_xdr": "AAAA"}
        gateway = make_gateway(lambda request: httpx.Response(200, json=body))

        lookup = await gateway.get_transaction("abc")

        assert lookup.status == status
        assert lookup.ledger == 99

    @pytest.mark.asyncio
    async def test_health_check(self):
        body = {"history_latest_ledger": 12, "network_passphrase": PASSPHRASE}
        gateway = make_gateway(lambda request: httpx.Response(200, json=body))
        health = await gateway.health_check()
        assert health["status"] == "healthy"
        assert health["ledger"] == 12

    @pytest.mark.asyncio
    async def test_health_check_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        health = await make_gateway(handler).health_check()
        assert health["status"] == "unavailable"
