"""
Transaction Lifecycle Manager

Drives each user operation through build -> sign -> submit -> poll and records
every step on the transaction log.

Features:
- Validates status changes against an allowed transition map
- Classifies gateway and signer failures for the user
- Bounded confirmation polling that reports "outcome unknown" separately
  from a confirmed on-chain failure
- A submit that timed out is polled by its hash instead of being reported as rejected
- Invalidates the cache scopes an operation touched once it succeeds
"""

import asyncio
import copy
import itertools
import logging
import time
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Union

from stellar_sdk import scval
from stellar_sdk import xdr as stellar_xdr

from ...cache import CacheKeys, TTLCache
from ...config import Settings, settings as default_settings
from ...logging_config import transaction_context
from ...providers.base import (
    ContractGateway,
    LedgerGateway,
    LookupStatus,
    Signer,
    SubmitError,
    SubmitResult,
    SubmitTimeoutError,
    TransactionLookup,
)
from ...services.balances import BalanceService
from ...services.pool import PoolService
from ..recovery.errors import WalletErrorCode, parse_error
from ..swap.models import SwapDirection
from ..swap.pricing import amounts_for_shares, calc_min_amount_out, shares_for_deposit
from .log import TransactionLog
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
from .validation import (
    check_spendable,
    require_connected,
    validate_contract_id,
    validate_minimum,
    validate_native_send,
    validate_positive_amount,
    validate_slippage,
)


logger = logging.getLogger(__name__)

EnvelopeBuilder = Callable[[], Awaitable[str]]
SubmitFn = Callable[[str], Awaitable[SubmitResult]]
LookupFn = Callable[[str], Awaitable[TransactionLookup]]

FAILED_ON_CHAIN_MESSAGE = "Transaction failed on-chain"
TIMEOUT_MESSAGE = (
    "Transaction polling timed out. It may still confirm, so check a block explorer before retrying."
)


class TransactionManager:
    """
    Runs one state machine per operation.

    Every mutation is keyed by transaction id, so a poll that resolves after a
    newer transaction started still lands on its own record. Build, sign and
    submit are never retried; a retry is a new transaction.
    """

    TRANSITIONS: Dict[TransactionStatus, Set[TransactionStatus]] = {
        TransactionStatus.BUILDING: {
            TransactionStatus.SIGNING,
            TransactionStatus.ERROR,
        },
        TransactionStatus.SIGNING: {
            TransactionStatus.SUBMITTING,
            TransactionStatus.ERROR,
        },
        TransactionStatus.SUBMITTING: {
            TransactionStatus.PENDING,
            TransactionStatus.ERROR,
        },
        TransactionStatus.PENDING: {
            TransactionStatus.SUCCESS,
            TransactionStatus.ERROR,
        },
        TransactionStatus.SUCCESS: set(),
        TransactionStatus.ERROR: set(),
    }

    def __init__(
        self,
        ledger: LedgerGateway,
        contract: ContractGateway,
        signer: Optional[Signer],
        cache: TTLCache,
        balances: BalanceService,
        pool: PoolService,
        log: Optional[TransactionLog] = None,
        config: Optional[Settings] = None,
    ):
        self.ledger = ledger
        self.contract = contract
        self.signer = signer
        self.cache = cache
        self.balances = balances
        self.pool = pool
        self.config = config or default_settings
        self.log = log if log is not None else TransactionLog(capacity=self.config.transaction_log_capacity)
        self._counter = itertools.count(1)
        self._background: Set[asyncio.Task] = set()

    @property
    def active(self) -> Optional[Transaction]:
        return self.log.active

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def send_native(
        self,
        source: str,
        recipient: str,
        amount: Union[str, Decimal],
        memo: Optional[str] = None,
        wait: bool = True,
    ) -> Transaction:
        """Send XLM, keeping the reserve buffer in the sender's account."""
        tx = self._open(TransactionKind.SEND_XLM, source, recipient=recipient)

        async def build() -> str:
            destination, value = validate_native_send(source, recipient, amount)
            balance = await self.balances.get_native_balance(source)
            check_spendable(value, balance, self.config.native_reserve_buffer)
            self._apply(
                tx,
                recipient=destination,
                amount=value,
                scopes=(CacheKeys.native_balance(source), CacheKeys.native_balance(destination)),
            )
            return await self.ledger.build_native_payment(source, destination, value, memo=memo)

        return await self._execute(tx, build, self.ledger.submit, self.ledger.get_transaction, wait)

    async def swap(
        self,
        source: str,
        direction: Union[SwapDirection, str],
        amount_in: int,
        min_amount_out: Optional[int] = None,
        slippage_percent: Optional[float] = None,
        wait: bool = True,
    ) -> Transaction:
        """Swap through the pool. Without ``min_amount_out`` the guard comes from a fresh quote."""
        tx = self._open(
            TransactionKind.SWAP,
            source,
            contract_id=self.pool.pool_id,
            direction=getattr(direction, "value", direction),
        )

        async def build() -> str:
            require_connected(source)
            pool_id = validate_contract_id(self.pool.pool_id)
            try:
                side = SwapDirection(direction)
            except ValueError:
                raise TransactionValidationError("Invalid swap direction")
            amount = validate_positive_amount("Amount", amount_in)
            if slippage_percent is not None:
                validate_slippage(slippage_percent)
            self._apply(tx, function_name=side.contract_function, direction=side.value)

            quoted: Optional[int] = None
            if min_amount_out is None:
                quote = await self.pool.quote(side, amount, slippage_percent)
                if quote.amount_out <= 0:
                    raise TransactionValidationError(
                        "Pool has no liquidity", code=WalletErrorCode.CONTRACT_ERROR
                    )
                quoted, guard = quote.amount_out, quote.min_amount_out
            else:
                guard = validate_minimum("Minimum output", min_amount_out)

            self._apply(
                tx,
                amount_in=amount,
                amount_out=quoted,
                min_amount_out=guard,
                scopes=self._pool_scopes(source),
            )
            return await self._contract_envelope(
                source,
                pool_id,
                side.contract_function,
                [scval.to_address(source), scval.to_int128(amount), scval.to_int128(guard)],
            )

        return await self._execute(
            tx, build, self.contract.send_transaction, self.contract.get_transaction, wait
        )

    async def add_liquidity(
        self,
        source: str,
        amount_a: int,
        amount_b: int,
        min_shares: int = 1,
        wait: bool = True,
    ) -> Transaction:
        tx = self._open(
            TransactionKind.ADD_LIQUIDITY,
            source,
            contract_id=self.pool.pool_id,
            function_name="add_liquidity",
        )

        async def build() -> str:
            require_connected(source)
            pool_id = validate_contract_id(self.pool.pool_id)
            a = validate_positive_amount("Token A amount", amount_a)
            b = validate_positive_amount("Token B amount", amount_b)
            floor_shares = validate_minimum("Minimum shares", min_shares)

            reserves = await self.pool.get_reserves()
            expected = shares_for_deposit(a, b, reserves.reserve_a, reserves.reserve_b, reserves.total_shares)
            self._apply(tx, amount_a=a, amount_b=b, shares=expected, scopes=self._pool_scopes(source))
            return await self._contract_envelope(
                source,
                pool_id,
                "add_liquidity",
                [
                    scval.to_address(source),
                    scval.to_int128(a),
                    scval.to_int128(b),
                    scval.to_int128(floor_shares),
                ],
            )

        return await self._execute(
            tx, build, self.contract.send_transaction, self.contract.get_transaction, wait
        )

    async def remove_liquidity(
        self,
        source: str,
        shares: int,
        min_amount_a: int = 0,
        min_amount_b: int = 0,
        slippage_percent: Optional[float] = None,
        wait: bool = True,
    ) -> Transaction:
        """Burn LP shares. With ``slippage_percent`` the minimums are derived from current reserves."""
        tx = self._open(
            TransactionKind.REMOVE_LIQUIDITY,
            source,
            contract_id=self.pool.pool_id,
            function_name="remove_liquidity",
        )

        async def build() -> str:
            require_connected(source)
            pool_id = validate_contract_id(self.pool.pool_id)
            burn = validate_positive_amount("Shares", shares)
            min_a = validate_minimum("Minimum token A", min_amount_a)
            min_b = validate_minimum("Minimum token B", min_amount_b)
            if slippage_percent is not None:
                validate_slippage(slippage_percent)
            expected_a: Optional[int] = None
            expected_b: Optional[int] = None

            if slippage_percent is not None:
                reserves = await self.pool.get_reserves()
                expected_a, expected_b = amounts_for_shares(
                    burn, reserves.reserve_a, reserves.reserve_b, reserves.total_shares
                )
                min_a = calc_min_amount_out(expected_a, slippage_percent)
                min_b = calc_min_amount_out(expected_b, slippage_percent)

            self._apply(
                tx,
                shares=burn,
                amount_a=expected_a,
                amount_b=expected_b,
                scopes=self._pool_scopes(source),
            )
            return await self._contract_envelope(
                source,
                pool_id,
                "remove_liquidity",
                [
                    scval.to_address(source),
                    scval.to_int128(burn),
                    scval.to_int128(min_a),
                    scval.to_int128(min_b),
                ],
            )

        return await self._execute(
            tx, build, self.contract.send_transaction, self.contract.get_transaction, wait
        )

    async def invoke_contract(
        self,
        source: str,
        contract_id: str,
        function_name: str,
        args: Sequence[stellar_xdr.SCVal] = (),
        scopes: Iterable[str] = (),
        wait: bool = True,
    ) -> Transaction:
        """Generic contract call. ``scopes`` are cache prefixes to drop on success."""
        tx = self._open(
            TransactionKind.CONTRACT_CALL,
            source,
            contract_id=contract_id,
            function_name=function_name,
        )

        async def build() -> str:
            require_connected(source)
            target = validate_contract_id(contract_id)
            if not function_name:
                raise TransactionValidationError("Function name is required")
            self._apply(tx, scopes=(CacheKeys.native_balance(source), *scopes))
            return await self._contract_envelope(source, target, function_name, list(args))

        return await self._execute(
            tx, build, self.contract.send_transaction, self.contract.get_transaction, wait
        )

    async def drain(self) -> None:
        """Wait for every background confirmation to finish."""
        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _new_id(self) -> str:
        return f"tx-{int(time.time() * 1000)}-{next(self._counter)}"

    def _open(self, kind: TransactionKind, source: str, **fields: Any) -> Transaction:
        tx = Transaction(id=self._new_id(), kind=kind, source=source, **fields)
        self.log.add(tx)
        logger.info("transaction %s created (%s)", tx.id, kind.value)
        return tx

    def _apply(self, tx: Transaction, **changes: Any) -> None:
        if self.log.update(tx.id, **changes) is None:
            # Evicted from the log; keep the caller's record current anyway
            for name, value in changes.items():
                setattr(tx, name, value)

    def _transition(self, tx: Transaction, status: TransactionStatus, **changes: Any) -> None:
        if status not in self.TRANSITIONS.get(tx.status, set()):
            raise InvalidTransitionError(tx.status, status, tx_id=tx.id)
        previous = tx.status
        self._apply(tx, status=status, **changes)
        logger.info("transaction %s: %s -> %s", tx.id, previous.value, status.value)

    def _reject_locally(self, tx: Transaction, exc: TransactionValidationError) -> None:
        exc.tx_id = tx.id
        self._transition(
            tx,
            TransactionStatus.ERROR,
            outcome=TransactionOutcome.REJECTED,
            error_message=exc.message,
            error_code=exc.code,
        )

    def _fail(self, tx: Transaction, exc: Exception) -> None:
        error = parse_error(exc)
        self._transition(
            tx,
            TransactionStatus.ERROR,
            outcome=TransactionOutcome.REJECTED,
            error_message=error.message,
            error_code=error.code,
            error_details=error.details,
            error_reason=error.reason,
        )
        logger.warning("transaction %s failed (%s): %s", tx.id, error.code.value, error.details)

    async def _execute(
        self,
        tx: Transaction,
        build: EnvelopeBuilder,
        submit: SubmitFn,
        lookup: LookupFn,
        wait: bool,
    ) -> Transaction:
        with transaction_context(tx.id, tx.kind.value):
            return await self._run(tx, build, submit, lookup, wait)

    async def _run(
        self,
        tx: Transaction,
        build: EnvelopeBuilder,
        submit: SubmitFn,
        lookup: LookupFn,
        wait: bool,
    ) -> Transaction:
        try:
            if self.signer is None:
                raise TransactionValidationError("Wallet not connected", code=WalletErrorCode.NOT_CONNECTED)
            envelope = await build()
        except TransactionValidationError as exc:
            self._reject_locally(tx, exc)
            raise
        except Exception as exc:
            self._fail(tx, exc)
            raise

        self._transition(tx, TransactionStatus.SIGNING)
        try:
            signed = await self.signer.sign(envelope, self.config.network_passphrase)
        except Exception as exc:
            self._fail(tx, exc)
            raise

        self._transition(tx, TransactionStatus.SUBMITTING)
        try:
            submitted = await submit(signed)
        except SubmitTimeoutError as exc:
            # The network may still apply it; follow the hash like any broadcast
            logger.warning("transaction %s submit timed out; polling %s", tx.id, exc.tx_hash)
            submitted = SubmitResult(hash=exc.tx_hash, status="TIMEOUT")
        except Exception as exc:
            if isinstance(exc, SubmitError) and exc.tx_hash:
                self._apply(tx, hash=exc.tx_hash)
            self._fail(tx, exc)
            raise

        self._transition(tx, TransactionStatus.PENDING, hash=submitted.hash)

        if submitted.ledger is not None:
            # Settled synchronously by the gateway
            status = LookupStatus.FAILED if submitted.successful is False else LookupStatus.SUCCESS
            self._resolve(tx, TransactionLookup(status=status, ledger=submitted.ledger))
        elif wait:
            await self._confirm(tx, lookup)
        else:
            task = asyncio.create_task(self._confirm_in_background(tx, lookup))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        return copy.copy(tx)

    def _resolve(self, tx: Transaction, result: TransactionLookup) -> bool:
        """Apply a definite lookup result. False while the outcome is still unknown."""
        if result.status == LookupStatus.SUCCESS and result.ledger is not None:
            self._transition(
                tx,
                TransactionStatus.SUCCESS,
                ledger_seq=result.ledger,
                outcome=TransactionOutcome.CONFIRMED,
            )
            self._invalidate(tx)
            return True

        if result.status == LookupStatus.FAILED:
            self._transition(
                tx,
                TransactionStatus.ERROR,
                ledger_seq=result.ledger,
                outcome=TransactionOutcome.FAILED_ON_CHAIN,
                error_message=FAILED_ON_CHAIN_MESSAGE,
                error_code=WalletErrorCode.UNKNOWN,
                error_details=result.result_xdr or "",
            )
            raise TransactionFailedError(FAILED_ON_CHAIN_MESSAGE, tx_hash=tx.hash or "", tx_id=tx.id)

        return False

    async def _confirm(self, tx: Transaction, lookup: LookupFn) -> None:
        attempts = self.config.poll_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                result = await lookup(tx.hash)
            except Exception as exc:
                logger.warning("Error checking transaction status for %s: %s", tx.hash, exc)
            else:
                if self._resolve(tx, result):
                    return
            if attempt < attempts:
                await asyncio.sleep(self.config.poll_interval_seconds)

        self._transition(
            tx,
            TransactionStatus.ERROR,
            outcome=TransactionOutcome.UNKNOWN,
            error_message=TIMEOUT_MESSAGE,
            error_code=WalletErrorCode.UNKNOWN,
            error_details=f"no result after {attempts} polls",
        )
        raise ConfirmationTimeoutError(TIMEOUT_MESSAGE, tx_hash=tx.hash or "", attempts=attempts, tx_id=tx.id)

    async def _confirm_in_background(self, tx: Transaction, lookup: LookupFn) -> None:
        try:
            await self._confirm(tx, lookup)
        except ExecutionError as exc:
            # Already recorded on the transaction
            logger.warning("transaction %s did not confirm: %s", tx.id, exc.message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _contract_envelope(
        self,
        source: str,
        contract_id: str,
        function_name: str,
        args: List[stellar_xdr.SCVal],
    ) -> str:
        envelope = await self.contract.build_invocation(source, contract_id, function_name, args)
        simulation = await self.contract.simulate(envelope)
        return await self.contract.assemble(envelope, simulation)

    def _pool_scopes(self, source: str) -> tuple:
        scopes = list(CacheKeys.pool_scopes(self.pool.pool_id))
        scopes.extend(CacheKeys.token_balance(token_id, source) for token_id in self.balances.token_ids)
        scopes.append(CacheKeys.native_balance(source))
        return tuple(scopes)

    def _invalidate(self, tx: Transaction) -> None:
        removed = sum(self.cache.invalidate_prefix(prefix) for prefix in tx.scopes)
        logger.info("transaction %s confirmed in ledger %s; %d cache entries invalidated", tx.id, tx.ledger_seq, removed)
