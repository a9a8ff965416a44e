"""Cache-backed reads of the constant-product pool."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Optional, Sequence, Tuple

from stellar_sdk import scval

from ..cache import CacheKeys, CacheTTL, TTLCache
from ..core.swap.models import PoolReserves, SwapDirection, SwapQuote
from ..core.swap.pricing import calc_min_amount_out, quote_swap
from ..providers.base import ContractGateway


class PoolService:
    """Reserve, share and quote lookups for one pool contract."""

    def __init__(
        self,
        contract: ContractGateway,
        cache: TTLCache,
        pool_id: str,
        ttl: Optional[CacheTTL] = None,
        read_source: str = "",
        default_slippage_percent: float = 0.5,
    ) -> None:
        self.contract = contract
        self.cache = cache
        self.pool_id = pool_id
        self.ttl = ttl or CacheTTL()
        self.read_source = read_source
        self.default_slippage_percent = default_slippage_percent

    async def _read(self, function_name: str, args: Sequence[Any] = (), source: str = "") -> Any:
        return await self.contract.simulate_read(
            source or self.read_source, self.pool_id, function_name, list(args)
        )

    async def get_reserves(self, force_refresh: bool = False) -> PoolReserves:
        key = CacheKeys.pool_reserves(self.pool_id)
        if force_refresh:
            self.cache.delete(key)

        async def fetch() -> PoolReserves:
            reserves, fee, total = await asyncio.gather(
                self._read("get_reserves"),
                self._read("get_fee"),
                self._read("total_shares"),
            )
            reserve_a, reserve_b = reserves
            return PoolReserves(
                reserve_a=int(reserve_a),
                reserve_b=int(reserve_b),
                fee_bps=int(fee),
                total_shares=int(total),
            )

        return await self.cache.get_or_fetch(key, fetch, self.ttl.pool)

    async def get_user_shares(self, address: str) -> int:
        async def fetch() -> int:
            return int(await self._read("get_shares", [scval.to_address(address)], source=address))

        return await self.cache.get_or_fetch(
            CacheKeys.pool_shares(self.pool_id, address), fetch, self.ttl.pool
        )

    async def get_tokens(self) -> Tuple[str, str]:
        token_a, token_b = await self._read("get_tokens")
        return str(token_a), str(token_b)

    async def quote(
        self,
        direction: SwapDirection,
        amount_in: int,
        slippage_percent: Optional[float] = None,
    ) -> SwapQuote:
        """Quote computed locally from cached reserves with the contract's integer math."""
        slippage = self.default_slippage_percent if slippage_percent is None else slippage_percent

        async def fetch() -> SwapQuote:
            reserves = await self.get_reserves()
            return quote_swap(direction, amount_in, reserves, slippage)

        key = CacheKeys.swap_quote(self.pool_id, direction.value, amount_in)
        quote = await self.cache.get_or_fetch(key, fetch, self.ttl.quote)
        if quote.slippage_percent != slippage:
            # Cached under another tolerance; only the guard changes
            quote = replace(
                quote,
                min_amount_out=calc_min_amount_out(quote.amount_out, slippage),
                slippage_percent=slippage,
            )
        return quote

    async def get_onchain_quote(self, direction: SwapDirection, amount_in: int) -> int:
        """Output amount as reported by the contract's own price function."""
        return int(await self._read(direction.price_function, [scval.to_int128(amount_in)]))
