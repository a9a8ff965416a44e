"""Pool and quote models."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict


class SwapDirection(str, Enum):
    A_TO_B = "a_to_b"
    B_TO_A = "b_to_a"

    @property
    def contract_function(self) -> str:
        return "swap_a_for_b" if self is SwapDirection.A_TO_B else "swap_b_for_a"

    @property
    def price_function(self) -> str:
        return "get_price_a_to_b" if self is SwapDirection.A_TO_B else "get_price_b_to_a"


@dataclass(frozen=True)
class PoolReserves:
    reserve_a: int
    reserve_b: int
    fee_bps: int = 30
    total_shares: int = 0

    def oriented(self, direction: SwapDirection) -> "tuple[int, int]":
        """(reserve_in, reserve_out) for a swap in ``direction``."""
        if direction is SwapDirection.A_TO_B:
            return self.reserve_a, self.reserve_b
        return self.reserve_b, self.reserve_a

    @property
    def has_liquidity(self) -> bool:
        return self.reserve_a > 0 and self.reserve_b > 0


@dataclass(frozen=True)
class SwapQuote:
    direction: SwapDirection
    amount_in: int
    amount_out: int
    min_amount_out: int
    fee_bps: int
    price_impact_bps: int
    slippage_percent: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.value
        return data


@dataclass(frozen=True)
class TokenMetadata:
    name: str = "Stellar Swap Token"
    symbol: str = "SST"
    decimals: int = 7
