"""
Tests for cache-backed balance and pool reads
"""

from decimal import Decimal

import pytest
from stellar_sdk import Keypair, StrKey

from stellar_fakes import FakeContract, FakeLedger
from stellar_swap.cache import CacheKeys, CacheTTL, TTLCache
from stellar_swap.core.swap import PoolReserves, SwapDirection, calc_min_amount_out, get_amount_out
from stellar_swap.providers import SorobanRpcError
from stellar_swap.services import BalanceService, PoolService


POOL = StrKey.encode_contract(b"\x01" * 32)
TOKEN_A = StrKey.encode_contract(b"\x02" * 32)


@pytest.fixture
def alice() -> str:
    return Keypair.random().public_key


@pytest.fixture
def cache() -> TTLCache:
    return TTLCache()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger(balance="42.5")


@pytest.fixture
def contract() -> FakeContract:
    return FakeContract()


@pytest.fixture
def balances(ledger, contract, cache) -> BalanceService:
    return BalanceService(ledger, contract, cache, token_ids=[TOKEN_A, ""])


@pytest.fixture
def pool(contract, cache) -> PoolService:
    return PoolService(contract, cache, POOL, ttl=CacheTTL(pool=10, quote=5))


# =============================================================================
# BalanceService
# =============================================================================

class TestBalances:
    @pytest.mark.asyncio
    async def test_native_balance_is_cached(self, balances, ledger, alice):
        assert await balances.get_native_balance(alice) == Decimal("42.5")
        assert await balances.get_native_balance(alice) == Decimal("42.5")
        assert ledger.load_calls == 1

    @pytest.mark.asyncio
    async def test_force_refresh(self, balances, ledger, alice):
        await balances.get_native_balance(alice)
        ledger.balance = Decimal("7")
        assert await balances.get_native_balance(alice, force_refresh=True) == Decimal("7")
        assert ledger.load_calls == 2

    @pytest.mark.asyncio
    async def test_unfunded_account_reads_zero(self, balances, ledger, alice):
        ledger.funded = False
        assert await balances.get_native_balance(alice) == Decimal(0)

    @pytest.mark.asyncio
    async def test_failed_read_is_not_cached(self, balances, contract, alice):
        contract.read_error = SorobanRpcError("RPC request failed for simulateTransaction")
        with pytest.raises(SorobanRpcError):
            await balances.get_token_balance(TOKEN_A, alice)

        contract.read_error = None
        assert await balances.get_token_balance(TOKEN_A, alice) == 5_000
        assert contract.read_calls == ["balance", "balance"]

    @pytest.mark.asyncio
    async def test_token_metadata(self, balances, contract):
        meta = await balances.get_token_metadata(TOKEN_A)
        again = await balances.get_token_metadata(TOKEN_A)

        assert (meta.name, meta.symbol, meta.decimals) == ("Token A", "TKA", 7)
        assert again == meta
        assert sorted(contract.read_calls) == ["decimals", "name", "symbol"]

    @pytest.mark.asyncio
    async def test_refresh_drops_every_balance(self, balances, cache, alice):
        await balances.get_native_balance(alice)
        await balances.get_token_balance(TOKEN_A, alice)

        balances.refresh(alice)

        assert not cache.has(CacheKeys.native_balance(alice))
        assert not cache.has(CacheKeys.token_balance(TOKEN_A, alice))

    def test_blank_token_ids_ignored(self, balances):
        assert balances.token_ids == [TOKEN_A]


# =============================================================================
# PoolService
# =============================================================================

class TestPool:
    @pytest.mark.asyncio
    async def test_reserves(self, pool, contract):
        reserves = await pool.get_reserves()
        await pool.get_reserves()

        assert reserves == PoolReserves(reserve_a=1_000_000, reserve_b=2_000_000, fee_bps=30, total_shares=1_000_000)
        assert sorted(contract.read_calls) == ["get_fee", "get_reserves", "total_shares"]

    @pytest.mark.asyncio
    async def test_quote_uses_contract_math(self, pool):
        quote = await pool.quote(SwapDirection.A_TO_B, 1000)

        expected = get_amount_out(1000, 1_000_000, 2_000_000, 30)
        assert quote.amount_out == expected
        assert quote.min_amount_out == calc_min_amount_out(expected, 0.5)

    @pytest.mark.asyncio
    async def test_cached_quote_with_other_slippage(self, pool, contract):
        first = await pool.quote(SwapDirection.B_TO_A, 1000, slippage_percent=0.5)
        calls = len(contract.read_calls)

        second = await pool.quote(SwapDirection.B_TO_A, 1000, slippage_percent=2.0)

        assert len(contract.read_calls) == calls
        assert second.amount_out == first.amount_out
        assert second.min_amount_out == calc_min_amount_out(first.amount_out, 2.0)
        assert second.slippage_percent == 2.0

    @pytest.mark.asyncio
    async def test_invalidation_forces_fresh_reserves(self, pool, contract, cache):
        await pool.get_reserves()
        contract.reads["get_reserves"] = [5, 6]

        for prefix in CacheKeys.pool_scopes(POOL):
            cache.invalidate_prefix(prefix)

        reserves = await pool.get_reserves()
        assert (reserves.reserve_a, reserves.reserve_b) == (5, 6)

    @pytest.mark.asyncio
    async def test_user_shares(self, pool, alice, cache):
        assert await pool.get_user_shares(alice) == 250
        assert cache.get(CacheKeys.pool_shares(POOL, alice)) == 250

    @pytest.mark.asyncio
    async def test_onchain_quote(self, pool, contract):
        contract.reads["get_price_a_to_b"] = 1992
        assert await pool.get_onchain_quote(SwapDirection.A_TO_B, 1000) == 1992
        assert contract.read_calls == ["get_price_a_to_b"]
