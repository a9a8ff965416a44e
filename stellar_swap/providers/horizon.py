"""Async Horizon client implementing the ledger gateway."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from stellar_sdk import Account, Asset, TransactionBuilder, TransactionEnvelope

from ..config import settings
from .base import (
    AccountInfo,
    AccountNotFoundError,
    HorizonError,
    LedgerGateway,
    LookupStatus,
    SubmitError,
    SubmitResult,
    SubmitTimeoutError,
    TransactionLookup,
)


logger = logging.getLogger(__name__)


class HorizonGateway(LedgerGateway):
    """
    Thin wrapper around the Horizon REST API.

    Usage:
        gateway = HorizonGateway()
        account = await gateway.load_account("G...")
        envelope = await gateway.build_native_payment("G...", "G...", Decimal("10"))
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        network_passphrase: Optional[str] = None,
        base_fee: Optional[int] = None,
        tx_timeout_seconds: Optional[int] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.horizon_url).rstrip("/")
        self.network_passphrase = network_passphrase or settings.network_passphrase
        self.base_fee = base_fee if base_fee is not None else settings.base_fee
        self.tx_timeout_seconds = tx_timeout_seconds or settings.tx_timeout_seconds
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                transport=self._transport,
                headers={"accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        try:
            return await client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            raise HorizonError(f"Horizon request failed: {exc}") from exc

    async def health_check(self) -> Dict[str, Any]:
        try:
            response = await self._request("GET", "/")
            if response.status_code == 200:
                data = response.json()
                return {
                    "status": "healthy",
                    "ledger": data.get("history_latest_ledger"),
                    "network": data.get("network_passphrase"),
                }
            return {"status": "degraded", "status_code": response.status_code}
        except HorizonError as exc:
            return {"status": "unavailable", "error": exc.message}

    async def load_account(self, address: str) -> AccountInfo:
        response = await self._request("GET", f"/accounts/{address}")
        if response.status_code == 404:
            raise AccountNotFoundError(address)
        if response.status_code != 200:
            raise HorizonError(_problem_detail(response), status_code=response.status_code)

        data = response.json()
        balances = data.get("balances", [])
        native = next(
            (b.get("balance", "0") for b in balances if b.get("asset_type") == "native"),
            "0",
        )
        return AccountInfo(
            address=address,
            sequence=int(data["sequence"]),
            native_balance=Decimal(native),
            balances=balances,
        )

    async def build_native_payment(
        self,
        source: str,
        destination: str,
        amount: Decimal,
        memo: Optional[str] = None,
    ) -> str:
        account = await self.load_account(source)
        builder = TransactionBuilder(
            source_account=Account(source, account.sequence),
            network_passphrase=self.network_passphrase,
            base_fee=self.base_fee,
        ).append_payment_op(
            destination=destination,
            asset=Asset.native(),
            amount=str(amount),
        )
        if memo:
            builder.add_text_memo(memo)
        return builder.set_timeout(self.tx_timeout_seconds).build().to_xdr()

    async def submit(self, signed_envelope: str) -> SubmitResult:
        try:
            response = await self._request("POST", "/transactions", data={"tx": signed_envelope})
        except HorizonError as exc:
            if _sent_without_reply(exc.__cause__):
                raise self._submit_timeout(signed_envelope, str(exc.__cause__) or "read timeout") from exc
            raise
        if response.status_code == 504:
            # Horizon gave up waiting on core; the transaction may still land
            raise self._submit_timeout(signed_envelope, "HTTP 504")
        data = _json_or_empty(response)

        if response.status_code == 200:
            logger.info("Horizon accepted transaction %s in ledger %s", data.get("hash"), data.get("ledger"))
            return SubmitResult(
                hash=data["hash"],
                status="SUCCESS" if data.get("successful", True) else "FAILED",
                ledger=data.get("ledger"),
                successful=data.get("successful", True),
            )

        result_codes = (data.get("extras") or {}).get("result_codes") or {}
        tx_hash = (data.get("extras") or {}).get("hash")
        if result_codes:
            codes = [result_codes.get("transaction", "")]
            codes.extend(result_codes.get("operations") or [])
            message = "Transaction submit failed: " + ", ".join(c for c in codes if c)
        else:
            message = f"Transaction submit failed: {_problem_detail(response)}"
        raise SubmitError(message, tx_hash=tx_hash, result_codes=result_codes)

    def _submit_timeout(self, signed_envelope: str, detail: str) -> SubmitTimeoutError:
        tx_hash = TransactionEnvelope.from_xdr(signed_envelope, self.network_passphrase).hash_hex()
        logger.warning("Horizon submit of %s timed out (%s)", tx_hash, detail)
        return SubmitTimeoutError(f"Transaction submit timed out: {detail}", tx_hash=tx_hash)

    async def get_transaction(self, tx_hash: str) -> TransactionLookup:
        response = await self._request("GET", f"/transactions/{tx_hash}")
        if response.status_code == 404:
            return TransactionLookup(status=LookupStatus.NOT_FOUND)
        if response.status_code != 200:
            raise HorizonError(_problem_detail(response), status_code=response.status_code)

        data = response.json()
        return TransactionLookup(
            status=LookupStatus.SUCCESS if data.get("successful") else LookupStatus.FAILED,
            ledger=data.get("ledger"),
            result_xdr=data.get("result_xdr"),
        )


def _sent_without_reply(cause: Optional[BaseException]) -> bool:
    """A timeout after the connection was made; the request may have been received."""
    return isinstance(cause, httpx.TimeoutException) and not isinstance(cause, (httpx.ConnectTimeout, httpx.PoolTimeout))


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _problem_detail(response: httpx.Response) -> str:
    data = _json_or_empty(response)
    return data.get("detail") or data.get("title") or f"HTTP {response.status_code}"
