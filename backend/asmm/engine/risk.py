from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from asmm.core.numeric import ensure_finite, sign
from asmm.engine.ledger import TradingLedger, recompute_unrealized
from asmm.errors import InvalidPositionUpdate
from asmm.models import FillResult, utcnow
from asmm.schemas import CircuitBreakerConfig, RiskLimits


@dataclass(slots=True)
class RiskInput:
    position_size: float
    notional: float
    pnl_total: float
    drawdown: float
    consecutive_losses: int


@dataclass(slots=True)
class RiskResult:
    triggered: bool
    reason: str | None = None


def position_notional(position_size: float, mark_price: float) -> float:
    mark = ensure_finite(mark_price, "mark_price", positive=True)
    return ensure_finite(abs(position_size) * mark, "notional")


def check_limits(limits: RiskLimits, position_size: float, notional: float) -> RiskResult:
    if abs(position_size) > limits.max_position:
        return RiskResult(True, f"持仓超限({position_size:.6f} > {limits.max_position:.6f})")
    if notional > limits.max_notional:
        return RiskResult(True, f"名义敞口超限({notional:.2f} > {limits.max_notional:.2f})")
    return RiskResult(False, None)


def scale_order_size(limits: RiskLimits, position_size: float, side: str, quantity: float) -> float:
    """按当前持仓占用率缩减加仓方向的下单量，减仓方向不缩。"""
    if side not in ("buy", "sell"):
        raise InvalidPositionUpdate(f"未知方向 {side!r}", field="side")
    quantity = ensure_finite(quantity, "quantity")
    if quantity <= 0:
        return 0.0

    d = quantity if side == "buy" else -quantity
    held = abs(position_size)
    if position_size != 0 and sign(d) != sign(position_size):
        if quantity <= held:
            return quantity
        # 反手：平仓部分照单全收，新开的部分不能超过限额。
        return held + min(quantity - held, limits.max_position)

    capacity = max(0.0, limits.max_position - held)
    utilization = min(1.0, held / limits.max_position)
    scaled = quantity * (1.0 - limits.scaling_factor * utilization)
    return max(0.0, min(scaled, capacity))


class CircuitBreaker:
    """熔断状态机：亏损、回撤、连续亏损任一触发即停止报价，冷却后自动恢复。"""

    def __init__(self, config: CircuitBreakerConfig) -> None:
        self._config = config
        self._peak_pnl: float | None = None
        self._consecutive_losses = 0
        self._halted_at: datetime | None = None
        self._reason: str | None = None
        self._logger = logging.getLogger("risk")

    @property
    def consecutive_losses(self) -> int:
        return self._consecutive_losses

    @property
    def halted(self) -> bool:
        return self._halted_at is not None

    def record_realized(self, realized_delta: float) -> None:
        if realized_delta < 0:
            self._consecutive_losses += 1
        elif realized_delta > 0:
            self._consecutive_losses = 0

    def update_drawdown(self, pnl_total: float) -> float:
        if self._peak_pnl is None:
            self._peak_pnl = pnl_total
            return 0.0
        self._peak_pnl = max(self._peak_pnl, pnl_total)
        return max(0.0, self._peak_pnl - pnl_total)

    def reset(self) -> None:
        self._peak_pnl = None
        self._consecutive_losses = 0
        self._halted_at = None
        self._reason = None

    def is_trading_allowed(self, now: datetime | None = None) -> bool:
        return not self._still_halted(now or utcnow())

    def _still_halted(self, now: datetime) -> bool:
        if self._halted_at is None:
            return False
        if now - self._halted_at >= timedelta(seconds=self._config.cooldown_sec):
            self._logger.info("熔断冷却结束，恢复交易: %s", self._reason)
            self._halted_at = None
            self._reason = None
            self._consecutive_losses = 0
            self._peak_pnl = None
            return False
        return True

    def evaluate(self, risk_input: RiskInput, now: datetime | None = None) -> RiskResult:
        now = now or utcnow()
        if self._still_halted(now):
            return RiskResult(True, self._reason)

        cfg = self._config
        reason: str | None = None
        if risk_input.pnl_total <= -cfg.max_loss:
            reason = f"亏损触发熔断({risk_input.pnl_total:.2f})"
        elif risk_input.drawdown >= cfg.max_drawdown:
            reason = f"回撤触发熔断({risk_input.drawdown:.2f})"
        elif risk_input.consecutive_losses >= cfg.max_consecutive_losses:
            reason = f"连续亏损达到阈值({risk_input.consecutive_losses})"

        if reason is None:
            return RiskResult(False, None)
        self._halted_at = now
        self._reason = reason
        self._logger.warning("%s", reason)
        return RiskResult(True, reason)


class RiskGuard:
    """把持仓限额和熔断套在单个 TradingLedger 上，只读不改账本。"""

    def __init__(self, limits: RiskLimits, breaker_config: CircuitBreakerConfig) -> None:
        self.limits = limits
        self.breaker = CircuitBreaker(breaker_config)

    def record_fill(self, result: FillResult) -> None:
        self.breaker.record_realized(result.realized_delta)

    def build_input(self, ledger: TradingLedger, mark_price: float) -> RiskInput:
        snapshot = ledger.snapshot()
        pnl_total = ensure_finite(
            snapshot.pnl.realized + recompute_unrealized(snapshot.position, mark_price),
            "pnl_total",
        )
        return RiskInput(
            position_size=snapshot.position.size,
            notional=position_notional(snapshot.position.size, mark_price),
            pnl_total=pnl_total,
            drawdown=self.breaker.update_drawdown(pnl_total),
            consecutive_losses=self.breaker.consecutive_losses,
        )

    def evaluate(self, ledger: TradingLedger, mark_price: float, now: datetime | None = None) -> RiskResult:
        risk_input = self.build_input(ledger, mark_price)
        result = self.breaker.evaluate(risk_input, now)
        if result.triggered:
            return result
        return check_limits(self.limits, risk_input.position_size, risk_input.notional)

    def order_size(self, ledger: TradingLedger, side: str, quantity: float, now: datetime | None = None) -> float:
        if not self.breaker.is_trading_allowed(now):
            return 0.0
        return scale_order_size(self.limits, ledger.position.size, side, quantity)
