"""Async Soroban RPC client implementing the contract gateway."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import httpx
from stellar_sdk import Account, Address, Keypair, TransactionBuilder, TransactionEnvelope, scval
from stellar_sdk import xdr as stellar_xdr

from ..config import settings
from .base import (
    AccountInfo,
    ContractEventRecord,
    ContractGateway,
    LookupStatus,
    SimulationError,
    SimulationResult,
    SorobanRpcError,
    SubmitError,
    SubmitResult,
    TransactionLookup,
)


logger = logging.getLogger(__name__)

STROOPS_PER_XLM = Decimal(10) ** 7


class SorobanGateway(ContractGateway):
    """
    JSON-RPC client for a Soroban RPC node.

    Contract calls follow build -> simulate -> assemble; the assembled envelope
    carries the simulated resource footprint, fee and auth entries.

    Usage:
        gateway = SorobanGateway()
        envelope = await gateway.build_invocation(source, contract_id, "swap_a_for_b", args)
        simulation = await gateway.simulate(envelope)
        ready = await gateway.assemble(envelope, simulation)
    """

    def __init__(
        self,
        *,
        rpc_url: Optional[str] = None,
        network_passphrase: Optional[str] = None,
        base_fee: Optional[int] = None,
        tx_timeout_seconds: Optional[int] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.rpc_url = rpc_url or settings.soroban_rpc_url
        self.network_passphrase = network_passphrase or settings.network_passphrase
        self.base_fee = base_fee if base_fee is not None else settings.base_fee
        self.tx_timeout_seconds = tx_timeout_seconds or settings.tx_timeout_seconds
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._request_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _rpc_call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Make a JSON-RPC call and return its ``result`` object."""
        client = await self._get_client()
        self._request_id += 1
        payload: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
        }
        if params is not None:
            payload["params"] = params

        try:
            response = await client.post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise SorobanRpcError(f"RPC HTTP {exc.response.status_code} for {method}") from exc
        except httpx.RequestError as exc:
            raise SorobanRpcError(f"RPC request failed for {method}: {exc}") from exc

        if "error" in data:
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            raise SorobanRpcError(f"RPC error: {message}", rpc_code=code)

        return data.get("result") or {}

    async def health_check(self) -> Dict[str, Any]:
        try:
            result = await self._rpc_call("getHealth")
            return {"status": "healthy" if result.get("status") == "healthy" else "degraded", **result}
        except SorobanRpcError as exc:
            return {"status": "unavailable", "error": exc.message}

    async def load_account(self, address: str) -> AccountInfo:
        key = stellar_xdr.LedgerKey(
            type=stellar_xdr.LedgerEntryType.ACCOUNT,
            account=stellar_xdr.LedgerKeyAccount(
                account_id=Keypair.from_public_key(address).xdr_account_id(),
            ),
        )
        result = await self._rpc_call("getLedgerEntries", {"keys": [key.to_xdr()]})
        entries = result.get("entries") or []
        if not entries:
            raise SorobanRpcError(f"Account not found: {address}")

        entry = stellar_xdr.LedgerEntryData.from_xdr(entries[0]["xdr"]).account
        return AccountInfo(
            address=address,
            sequence=entry.seq_num.sequence_number.int64,
            native_balance=Decimal(entry.balance.int64) / STROOPS_PER_XLM,
        )

    async def build_invocation(
        self,
        source: str,
        contract_id: str,
        function_name: str,
        args: Sequence[stellar_xdr.SCVal],
    ) -> str:
        account = await self.load_account(source)
        return (
            TransactionBuilder(
                source_account=Account(source, account.sequence),
                network_passphrase=self.network_passphrase,
                base_fee=self.base_fee,
            )
            .append_invoke_contract_function_op(
                contract_id=contract_id,
                function_name=function_name,
                parameters=list(args),
            )
            .set_timeout(self.tx_timeout_seconds)
            .build()
            .to_xdr()
        )

    async def simulate(self, envelope: str) -> SimulationResult:
        result = await self._rpc_call("simulateTransaction", {"transaction": envelope})
        if result.get("error"):
            raise SimulationError(f"Simulation failed: {result['error']}")

        results = result.get("results") or []
        first = results[0] if results else {}
        return SimulationResult(
            transaction_data=result["transactionData"],
            min_resource_fee=int(result.get("minResourceFee", 0)),
            auth=list(first.get("auth") or []),
            result_xdr=first.get("xdr"),
            latest_ledger=result.get("latestLedger"),
        )

    async def assemble(self, envelope: str, simulation: SimulationResult) -> str:
        tx_envelope = TransactionEnvelope.from_xdr(envelope, self.network_passphrase)
        tx = tx_envelope.transaction
        tx.soroban_data = stellar_xdr.SorobanTransactionData.from_xdr(simulation.transaction_data)
        tx.fee += simulation.min_resource_fee

        operation = tx.operations[0]
        if simulation.auth and not getattr(operation, "auth", None):
            operation.auth = [
                stellar_xdr.SorobanAuthorizationEntry.from_xdr(entry) for entry in simulation.auth
            ]
        return tx_envelope.to_xdr()

    async def send_transaction(self, signed_envelope: str) -> SubmitResult:
        result = await self._rpc_call("sendTransaction", {"transaction": signed_envelope})
        status = result.get("status", "")
        tx_hash = result.get("hash")

        if status in ("ERROR", "TRY_AGAIN_LATER"):
            detail = result.get("errorResultXdr") or status
            raise SubmitError(f"Submit failed: {status} {detail}", tx_hash=tx_hash)
        if not tx_hash:
            raise SubmitError("Submit failed: no hash returned from sendTransaction")

        logger.info("Soroban accepted transaction %s with status %s", tx_hash, status)
        return SubmitResult(hash=tx_hash, status=status)

    async def get_transaction(self, tx_hash: str) -> TransactionLookup:
        result = await self._rpc_call("getTransaction", {"hash": tx_hash})
        status = result.get("status", LookupStatus.NOT_FOUND.value)
        if status == LookupStatus.SUCCESS.value:
            return TransactionLookup(status=LookupStatus.SUCCESS, ledger=result.get("ledger"))
        if status == LookupStatus.FAILED.value:
            return TransactionLookup(
                status=LookupStatus.FAILED,
                ledger=result.get("ledger"),
                result_xdr=result.get("resultXdr"),
            )
        return TransactionLookup(status=LookupStatus.NOT_FOUND)

    async def get_latest_ledger(self) -> int:
        result = await self._rpc_call("getLatestLedger")
        return int(result["sequence"])

    async def get_events(
        self,
        start_ledger: int,
        contract_ids: Sequence[str],
        limit: int = 50,
    ) -> List[ContractEventRecord]:
        result = await self._rpc_call(
            "getEvents",
            {
                "startLedger": start_ledger,
                "filters": [{"type": "contract", "contractIds": list(contract_ids)}],
                "pagination": {"limit": limit},
            },
        )
        return [
            ContractEventRecord(
                id=raw["id"],
                ledger=int(raw["ledger"]),
                tx_hash=raw.get("txHash", ""),
                contract_id=raw.get("contractId", ""),
                topics=[decode_scval(t) for t in raw.get("topic") or []],
                value=decode_scval(raw["value"]) if raw.get("value") else None,
                ledger_closed_at=raw.get("ledgerClosedAt"),
            )
            for raw in result.get("events") or []
        ]

    async def simulate_read(
        self,
        source: str,
        contract_id: str,
        function_name: str,
        args: Sequence[stellar_xdr.SCVal] = (),
    ) -> Any:
        envelope = await self.build_invocation(source, contract_id, function_name, args)
        simulation = await self.simulate(envelope)
        if not simulation.result_xdr:
            raise SimulationError(f"Simulation failed: {function_name} returned no result")
        return decode_scval(simulation.result_xdr)


def decode_scval(encoded: str) -> Any:
    """Decode base64 SCVal XDR into plain Python values. Addresses become strkeys."""
    return _plain(scval.to_native(stellar_xdr.SCVal.from_xdr(encoded)))


def _plain(value: Any) -> Any:
    if isinstance(value, Address):
        return value.address
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {_plain(k): _plain(v) for k, v in value.items()}
    return value
