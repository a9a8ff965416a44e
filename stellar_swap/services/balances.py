"""Cache-backed account balance and token metadata reads."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Iterable, Optional

from stellar_sdk import scval

from ..cache import CacheKeys, CacheTTL, TTLCache
from ..core.swap.models import TokenMetadata
from ..providers.base import AccountNotFoundError, ContractGateway, LedgerGateway

logger = logging.getLogger(__name__)


class BalanceService:
    """Reads balances through the session cache. Failed reads propagate and are not cached."""

    def __init__(
        self,
        ledger: LedgerGateway,
        contract: ContractGateway,
        cache: TTLCache,
        ttl: Optional[CacheTTL] = None,
        read_source: str = "",
        token_ids: Iterable[str] = (),
    ) -> None:
        self.ledger = ledger
        self.contract = contract
        self.cache = cache
        self.ttl = ttl or CacheTTL()
        self.read_source = read_source
        self.token_ids = [t for t in token_ids if t]

    async def get_native_balance(self, address: str, force_refresh: bool = False) -> Decimal:
        key = CacheKeys.native_balance(address)
        if force_refresh:
            self.cache.delete(key)
        return await self.cache.get_or_fetch(key, lambda: self._load_native(address), self.ttl.balance)

    async def _load_native(self, address: str) -> Decimal:
        try:
            account = await self.ledger.load_account(address)
        except AccountNotFoundError:
            # Unfunded accounts hold nothing
            return Decimal(0)
        return account.native_balance

    async def get_token_balance(self, token_id: str, address: str, force_refresh: bool = False) -> int:
        key = CacheKeys.token_balance(token_id, address)
        if force_refresh:
            self.cache.delete(key)

        async def fetch() -> int:
            value = await self.contract.simulate_read(
                self.read_source or address,
                token_id,
                "balance",
                [scval.to_address(address)],
            )
            return int(value)

        return await self.cache.get_or_fetch(key, fetch, self.ttl.balance)

    async def get_token_metadata(self, token_id: str) -> TokenMetadata:
        async def fetch() -> TokenMetadata:
            source = self.read_source
            name, symbol, decimals = await asyncio.gather(
                self.contract.simulate_read(source, token_id, "name"),
                self.contract.simulate_read(source, token_id, "symbol"),
                self.contract.simulate_read(source, token_id, "decimals"),
            )
            return TokenMetadata(name=str(name), symbol=str(symbol), decimals=int(decimals))

        return await self.cache.get_or_fetch(
            CacheKeys.token_metadata(token_id), fetch, self.ttl.token_metadata
        )

    def refresh(self, address: str) -> None:
        """Drop every cached balance for ``address``."""
        self.cache.delete(CacheKeys.native_balance(address))
        for token_id in self.token_ids:
            self.cache.delete(CacheKeys.token_balance(token_id, address))
        logger.debug("balance cache refreshed for %s", address)
