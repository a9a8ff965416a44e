"""
Session composition root.

A session owns the cache, gateways, read services, transaction manager and
event feed for one process. Nothing here is a module-level global: tests and
embedding applications build as many sessions as they need.
"""

import asyncio
import logging
from typing import Callable, Optional

from .cache import CacheTTL, TTLCache
from .config import Settings, settings as default_settings
from .core.execution.log import TransactionLog
from .core.execution.manager import TransactionManager
from .providers.base import ContractGateway, KeypairSigner, LedgerGateway, Signer
from .providers.horizon import HorizonGateway
from .providers.soroban import SorobanGateway
from .services.balances import BalanceService
from .services.events import EventFeed
from .services.pool import PoolService

logger = logging.getLogger(__name__)


class Session:
    """Wires the components together and ties their lifetimes to start/close."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        signer: Optional[Signer] = None,
        ledger: Optional[LedgerGateway] = None,
        contract: Optional[ContractGateway] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config or default_settings
        cfg = self.config

        self.cache = TTLCache(default_ttl=cfg.cache_ttl_seconds, clock=clock)
        ttl = CacheTTL.from_settings(cfg)

        self.ledger = ledger or HorizonGateway(
            base_url=cfg.horizon_url,
            network_passphrase=cfg.network_passphrase,
            base_fee=cfg.base_fee,
            tx_timeout_seconds=cfg.tx_timeout_seconds,
            timeout_s=cfg.request_timeout_seconds,
        )
        self.contract = contract or SorobanGateway(
            rpc_url=cfg.soroban_rpc_url,
            network_passphrase=cfg.network_passphrase,
            base_fee=cfg.base_fee,
            tx_timeout_seconds=cfg.tx_timeout_seconds,
            timeout_s=cfg.request_timeout_seconds,
        )
        if signer is None and cfg.signer_secret:
            signer = KeypairSigner(cfg.signer_secret)
        self.signer = signer

        self.balances = BalanceService(
            self.ledger,
            self.contract,
            self.cache,
            ttl=ttl,
            read_source=cfg.read_source_account,
            token_ids=(cfg.token_a_contract_id, cfg.token_b_contract_id),
        )
        self.pool = PoolService(
            self.contract,
            self.cache,
            cfg.swap_contract_id,
            ttl=ttl,
            read_source=cfg.read_source_account,
            default_slippage_percent=cfg.default_slippage_percent,
        )
        self.log = TransactionLog(capacity=cfg.transaction_log_capacity)
        self.manager = TransactionManager(
            self.ledger,
            self.contract,
            self.signer,
            self.cache,
            self.balances,
            self.pool,
            log=self.log,
            config=cfg,
        )
        self.events = EventFeed(
            self.contract,
            [cfg.swap_contract_id, cfg.token_a_contract_id, cfg.token_b_contract_id],
            limit=cfg.event_feed_limit,
            lookback=cfg.event_lookback_ledgers,
        )

        self._stop = asyncio.Event()
        self._feed_task: Optional[asyncio.Task] = None

    async def start(self, with_event_feed: bool = True) -> None:
        self.cache.start_sweeper(self.config.cache_sweep_interval_seconds)
        if with_event_feed and self.events.contract_ids and self._feed_task is None:
            self._stop.clear()
            self._feed_task = asyncio.create_task(
                self.events.run(self._stop, interval=self.config.event_poll_interval_seconds)
            )
        logger.info("session started on %s", self.config.network)

    async def close(self) -> None:
        """Stop background work and release HTTP clients.

        Confirmation polls still in flight are awaited so their results land in the log.
        """
        self._stop.set()
        if self._feed_task is not None:
            try:
                await self._feed_task
            except Exception as exc:
                logger.error("event feed stopped with an error: %s", exc)
            self._feed_task = None
        await self.manager.drain()
        await self.cache.close()
        for gateway in (self.ledger, self.contract):
            close = getattr(gateway, "close", None)
            if close is not None:
                await close()
        self.cache.clear()
        logger.info("session closed")

    async def __aenter__(self) -> "Session":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
