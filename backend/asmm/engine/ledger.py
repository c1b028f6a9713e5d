from __future__ import annotations

import logging
import math
from dataclasses import replace

from asmm.core.numeric import ensure_finite, same_magnitude, sign
from asmm.errors import InvalidPositionUpdate
from asmm.models import FillResult, InventoryPosition, PnL, SessionSnapshot
from asmm.schemas import Fill


def _require_positive(value: float, name: str) -> float:
    # Fill 构造时已校验，这里拦截 model_construct 绕过校验的情况。
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidPositionUpdate(f"无法转换为数值({value!r})", field=name) from exc
    if not math.isfinite(value) or value <= 0:
        raise InvalidPositionUpdate(f"必须为有限正数，实际为 {value}", field=name)
    return value


def apply_fill(position: InventoryPosition, fill: Fill) -> FillResult:
    """按成交更新持仓，返回新持仓与本次已实现盈亏，不修改入参。

    四种迁移：同向加仓（加权均价）、部分减仓（均价不变）、恰好平仓（均价重置）、
    反手（平掉原仓位后，剩余部分以成交价开反向仓）。
    """
    quantity = _require_positive(fill.quantity, "quantity")
    price = _require_positive(fill.price, "price")
    if fill.side not in ("buy", "sell"):
        raise InvalidPositionUpdate(f"未知方向 {fill.side!r}", field="side")

    s = position.size
    d = quantity if fill.side == "buy" else -quantity
    avg = position.average_entry_price

    if s == 0 or sign(s) == sign(d):
        new_size = s + d
        new_avg = (abs(s) * avg + abs(d) * price) / abs(new_size)
        realized = 0.0
        transition = "increase"
    elif same_magnitude(d, s):
        realized = sign(s) * abs(s) * (price - avg)
        new_size = 0.0
        new_avg = 0.0
        transition = "flatten"
    elif abs(d) < abs(s):
        realized = sign(s) * abs(d) * (price - avg)
        new_size = s + d
        new_avg = avg
        transition = "reduce"
    else:
        # 只有原仓位 |s| 部分产生已实现盈亏，超出部分按成交价开新仓。
        realized = sign(s) * abs(s) * (price - avg)
        new_size = s + d
        new_avg = price
        transition = "flip"

    updated = InventoryPosition(
        size=ensure_finite(new_size, "size"),
        average_entry_price=ensure_finite(new_avg, "average_entry_price"),
        last_update=fill.timestamp or position.last_update,
    )
    return FillResult(
        position=updated,
        realized_delta=ensure_finite(realized, "realized_delta"),
        transition=transition,
    )


def recompute_unrealized(position: InventoryPosition, mark_price: float) -> float:
    mark = ensure_finite(mark_price, "mark_price")
    if position.is_flat:
        return 0.0
    return ensure_finite(position.size * (mark - position.average_entry_price), "unrealized")


class TradingLedger:
    """单个交易会话的持仓与盈亏账本，不支持并发修改。"""

    def __init__(self, name: str = "default") -> None:
        self.name = name
        self._position = InventoryPosition()
        self._pnl = PnL()
        self._fill_count = 0
        self._logger = logging.getLogger("ledger")

    @property
    def position(self) -> InventoryPosition:
        return replace(self._position)

    @property
    def pnl(self) -> PnL:
        return replace(self._pnl)

    @property
    def fill_count(self) -> int:
        return self._fill_count

    def apply_fill(self, fill: Fill) -> FillResult:
        before = self._position.size
        result = apply_fill(self._position, fill)
        self._position = result.position
        self._pnl.add_realized(result.realized_delta)
        self._fill_count += 1

        if result.transition == "flip":
            self._logger.info(
                "[%s] 反手 %s %.6f@%.6f size %.6f -> %.6f realized=%.6f",
                self.name,
                fill.side,
                fill.quantity,
                fill.price,
                before,
                result.position.size,
                result.realized_delta,
            )
        else:
            self._logger.info(
                "[%s] 成交(%s) %s %.6f@%.6f size=%.6f avg=%.6f realized=%.6f",
                self.name,
                result.transition,
                fill.side,
                fill.quantity,
                fill.price,
                result.position.size,
                result.position.average_entry_price,
                result.realized_delta,
            )
        # 返回副本，账本内部持仓只能通过成交修改。
        return replace(result, position=self.position)

    def mark_to_market(self, mark_price: float) -> float:
        unrealized = recompute_unrealized(self._position, mark_price)
        self._pnl.set_unrealized(unrealized)
        return unrealized

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(position=self.position, pnl=self.pnl)
