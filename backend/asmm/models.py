from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

FillTransition = Literal["increase", "reduce", "flatten", "flip"]


@dataclass(slots=True, frozen=True)
class Quote:
    bid_price: float
    ask_price: float

    @property
    def spread(self) -> float:
        return self.ask_price - self.bid_price

    @property
    def mid(self) -> float:
        return (self.bid_price + self.ask_price) / 2


@dataclass(slots=True, frozen=True)
class QuoteDecision:
    quote: Quote
    reservation_price: float
    spread: float
    inventory_size: float
    time_remaining: float


@dataclass(slots=True)
class InventoryPosition:
    """当前库存。size 为正表示多头，为负表示空头；空仓时均价无意义，重置为 0。"""

    size: float = 0.0
    average_entry_price: float = 0.0
    last_update: datetime | None = None

    @property
    def is_flat(self) -> bool:
        return self.size == 0

    @property
    def is_long(self) -> bool:
        return self.size > 0

    @property
    def is_short(self) -> bool:
        return self.size < 0


@dataclass(slots=True)
class PnL:
    realized: float = 0.0
    unrealized: float = 0.0

    @property
    def total(self) -> float:
        return self.realized + self.unrealized

    def add_realized(self, amount: float) -> None:
        self.realized += amount

    def set_unrealized(self, amount: float) -> None:
        self.unrealized = amount


@dataclass(slots=True, frozen=True)
class FillResult:
    position: InventoryPosition
    realized_delta: float
    transition: FillTransition


@dataclass(slots=True, frozen=True)
class SessionSnapshot:
    position: InventoryPosition
    pnl: PnL


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
