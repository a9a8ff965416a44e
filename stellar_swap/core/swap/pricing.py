"""
Constant-product pricing.

All amounts are integers in the token's smallest unit. The arithmetic mirrors
the pool contract's i128 math, including floor division, so a quote computed
here is exactly what the contract will pay out against the same reserves.
"""

from decimal import ROUND_FLOOR, Decimal
from math import isqrt
from typing import Tuple

from .models import PoolReserves, SwapDirection, SwapQuote


BPS_DENOMINATOR = 10_000


def _require_int(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """Output amount for ``amount_in`` against the given reserves, after fee.

    Returns 0 for an empty or uninitialized pool.
    """
    for name, value in (
        ("amount_in", amount_in),
        ("reserve_in", reserve_in),
        ("reserve_out", reserve_out),
        ("fee_bps", fee_bps),
    ):
        _require_int(name, value)

    if reserve_in <= 0 or reserve_out <= 0:
        return 0

    amount_in_with_fee = amount_in * (BPS_DENOMINATOR - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * BPS_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def calc_min_amount_out(quoted_amount_out: int, slippage_percent: float) -> int:
    """Lowest output accepted on-chain for a quote at the given slippage tolerance."""
    _require_int("quoted_amount_out", quoted_amount_out)
    slippage = Decimal(str(slippage_percent))
    if slippage < 0 or slippage > 100:
        raise ValueError(f"slippage_percent must be between 0 and 100, got {slippage_percent}")

    factor = 1 - slippage / 100
    return int((Decimal(quoted_amount_out) * factor).to_integral_value(rounding=ROUND_FLOOR))


def price_impact_bps(amount_in: int, amount_out: int, reserve_in: int, reserve_out: int) -> int:
    """How far the execution price falls below the spot price, in basis points (fee included)."""
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    spot_out = amount_in * reserve_out
    shortfall = spot_out - amount_out * reserve_in
    return max(0, shortfall * BPS_DENOMINATOR // spot_out)


def quote_swap(
    direction: SwapDirection,
    amount_in: int,
    reserves: PoolReserves,
    slippage_percent: float,
) -> SwapQuote:
    reserve_in, reserve_out = reserves.oriented(direction)
    amount_out = get_amount_out(amount_in, reserve_in, reserve_out, reserves.fee_bps)
    return SwapQuote(
        direction=direction,
        amount_in=amount_in,
        amount_out=amount_out,
        min_amount_out=calc_min_amount_out(amount_out, slippage_percent),
        fee_bps=reserves.fee_bps,
        price_impact_bps=price_impact_bps(amount_in, amount_out, reserve_in, reserve_out),
        slippage_percent=slippage_percent,
    )


def shares_for_deposit(
    amount_a: int,
    amount_b: int,
    reserve_a: int,
    reserve_b: int,
    total_shares: int,
) -> int:
    """LP shares minted for a deposit.

    The first deposit mints ``isqrt(a * b)``; later deposits mint in proportion
    to the smaller of the two contributions.
    """
    _require_int("amount_a", amount_a)
    _require_int("amount_b", amount_b)
    if amount_a <= 0 or amount_b <= 0:
        return 0
    if total_shares <= 0 or reserve_a <= 0 or reserve_b <= 0:
        return isqrt(amount_a * amount_b)
    return min(amount_a * total_shares // reserve_a, amount_b * total_shares // reserve_b)


def amounts_for_shares(
    shares: int,
    reserve_a: int,
    reserve_b: int,
    total_shares: int,
) -> Tuple[int, int]:
    """Token amounts returned when burning ``shares``."""
    _require_int("shares", shares)
    if shares <= 0 or total_shares <= 0:
        return 0, 0
    return shares * reserve_a // total_shares, shares * reserve_b // total_shares
