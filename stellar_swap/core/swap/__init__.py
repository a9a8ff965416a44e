"""Constant-product pool pricing and quote models."""

from .models import PoolReserves, SwapDirection, SwapQuote, TokenMetadata
from .pricing import (
    amounts_for_shares,
    calc_min_amount_out,
    get_amount_out,
    price_impact_bps,
    quote_swap,
    shares_for_deposit,
)

__all__ = [
    "PoolReserves",
    "SwapDirection",
    "SwapQuote",
    "TokenMetadata",
    "amounts_for_shares",
    "calc_min_amount_out",
    "get_amount_out",
    "price_impact_bps",
    "quote_swap",
    "shares_for_deposit",
]
