"""
Gateway and signer interfaces consumed by the transaction lifecycle.

Envelopes cross these boundaries as base64 transaction-envelope XDR strings.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from stellar_sdk import Keypair, TransactionEnvelope
from stellar_sdk import xdr as stellar_xdr


class GatewayError(Exception):
    """Base exception for Horizon and Soroban RPC failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class HorizonError(GatewayError):
    """Horizon returned an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AccountNotFoundError(HorizonError):
    """Account does not exist on the ledger (never funded)."""

    def __init__(self, address: str):
        super().__init__(f"Account not found: {address}", status_code=404)
        self.address = address


class SorobanRpcError(GatewayError):
    """JSON-RPC level error from Soroban RPC."""

    def __init__(self, message: str, rpc_code: Optional[int] = None):
        super().__init__(message)
        self.rpc_code = rpc_code


class SimulationError(GatewayError):
    """Contract invocation failed during simulation."""


class SubmitError(GatewayError):
    """Network refused the signed envelope."""

    def __init__(
        self,
        message: str,
        tx_hash: Optional[str] = None,
        result_codes: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.result_codes = result_codes or {}


class SubmitTimeoutError(SubmitError):
    """
    Submission timed out without a verdict.

    The envelope may still be applied, so ``tx_hash`` is always set (computed
    locally from the signed envelope) and callers should poll it.
    """

    def __init__(self, message: str, tx_hash: str):
        super().__init__(message, tx_hash=tx_hash)


class LookupStatus(str, Enum):
    """Inclusion status of a broadcast transaction."""
    NOT_FOUND = "NOT_FOUND"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass
class AccountInfo:
    address: str
    sequence: int
    native_balance: Decimal
    balances: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class SubmitResult:
    hash: str
    status: str = "PENDING"
    ledger: Optional[int] = None         # Set when the gateway settled synchronously
    successful: Optional[bool] = None


@dataclass
class TransactionLookup:
    status: LookupStatus
    ledger: Optional[int] = None
    result_xdr: Optional[str] = None


@dataclass
class SimulationResult:
    transaction_data: str
    min_resource_fee: int
    auth: List[str] = field(default_factory=list)
    result_xdr: Optional[str] = None
    latest_ledger: Optional[int] = None


@dataclass
class ContractEventRecord:
    id: str
    ledger: int
    tx_hash: str
    contract_id: str
    topics: List[Any]
    value: Any
    ledger_closed_at: Optional[str] = None


class LedgerGateway(ABC):
    """Classic ledger access (Horizon)."""

    @abstractmethod
    async def load_account(self, address: str) -> AccountInfo:
        pass

    @abstractmethod
    async def build_native_payment(
        self,
        source: str,
        destination: str,
        amount: Decimal,
        memo: Optional[str] = None,
    ) -> str:
        """Unsigned envelope paying ``amount`` XLM from ``source`` to ``destination``."""
        pass

    @abstractmethod
    async def submit(self, signed_envelope: str) -> SubmitResult:
        pass

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> TransactionLookup:
        pass


class ContractGateway(ABC):
    """Smart-contract access (Soroban RPC)."""

    @abstractmethod
    async def load_account(self, address: str) -> AccountInfo:
        pass

    @abstractmethod
    async def build_invocation(
        self,
        source: str,
        contract_id: str,
        function_name: str,
        args: Sequence[stellar_xdr.SCVal],
    ) -> str:
        pass

    @abstractmethod
    async def simulate(self, envelope: str) -> SimulationResult:
        """Resource estimate for ``envelope``. Raises SimulationError when the call would fail."""
        pass

    @abstractmethod
    async def assemble(self, envelope: str, simulation: SimulationResult) -> str:
        pass

    @abstractmethod
    async def send_transaction(self, signed_envelope: str) -> SubmitResult:
        pass

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> TransactionLookup:
        pass

    @abstractmethod
    async def get_latest_ledger(self) -> int:
        pass

    @abstractmethod
    async def get_events(
        self,
        start_ledger: int,
        contract_ids: Sequence[str],
        limit: int = 50,
    ) -> List[ContractEventRecord]:
        pass

    @abstractmethod
    async def simulate_read(
        self,
        source: str,
        contract_id: str,
        function_name: str,
        args: Sequence[stellar_xdr.SCVal] = (),
    ) -> Any:
        """Run a read-only call through simulation and return the decoded result."""
        pass


class Signer(ABC):
    """Produces a signed envelope. May raise if the user rejects or cancels."""

    @abstractmethod
    async def sign(self, envelope: str, network_passphrase: str) -> str:
        pass


class CallbackSigner(Signer):
    """Delegates signing to an async callable, e.g. a bridge to a browser wallet."""

    def __init__(self, callback: Callable[[str, str], Awaitable[str]]):
        self._callback = callback

    async def sign(self, envelope: str, network_passphrase: str) -> str:
        return await self._callback(envelope, network_passphrase)


class KeypairSigner(Signer):
    """Signs with a local secret key. For scripts and test accounts."""

    def __init__(self, secret: str):
        self._keypair = Keypair.from_secret(secret)

    @property
    def public_key(self) -> str:
        return self._keypair.public_key

    async def sign(self, envelope: str, network_passphrase: str) -> str:
        tx_envelope = TransactionEnvelope.from_xdr(envelope, network_passphrase)
        tx_envelope.sign(self._keypair)
        return tx_envelope.to_xdr()
