from datetime import datetime, timedelta, timezone

import pytest

from asmm.engine.ledger import TradingLedger
from asmm.engine.risk import CircuitBreaker, RiskGuard, RiskInput, check_limits, position_notional, scale_order_size
from asmm.errors import InvalidConfiguration, InvalidPositionUpdate, NumericalError
from asmm.schemas import CircuitBreakerConfig, Fill, RiskLimits

T0 = datetime(2026, 2, 19, tzinfo=timezone.utc)


def _limits() -> RiskLimits:
    return RiskLimits(max_position=10, max_notional=1000, scaling_factor=0.5)


def _breaker_config() -> CircuitBreakerConfig:
    return CircuitBreakerConfig(max_loss=100, max_drawdown=50, max_consecutive_losses=3, cooldown_sec=60)


def test_risk_config_validation():
    with pytest.raises(InvalidConfiguration):
        RiskLimits(max_position=0, max_notional=1000)
    with pytest.raises(InvalidConfiguration):
        RiskLimits(max_position=10, max_notional=1000, scaling_factor=1.5)
    with pytest.raises(InvalidConfiguration):
        CircuitBreakerConfig(max_loss=100, max_drawdown=50, max_consecutive_losses=True)
    assert RiskLimits(max_position=10, max_notional=1000).scaling_factor == 0.5


def test_check_limits():
    limits = _limits()
    assert check_limits(limits, 10.0, 1000.0).triggered is False
    assert check_limits(limits, -12.0, 500.0).triggered is True
    result = check_limits(limits, 5.0, position_notional(5.0, 240.0))
    assert result.triggered is True
    assert "名义" in result.reason


def test_position_notional_rejects_bad_mark():
    with pytest.raises(NumericalError):
        position_notional(1.0, float("nan"))


def test_scale_order_size():
    limits = _limits()
    assert scale_order_size(limits, 0.0, "buy", 4.0) == 4.0
    assert scale_order_size(limits, 6.0, "buy", 4.0) == pytest.approx(2.8)
    assert scale_order_size(limits, 10.0, "buy", 1.0) == 0.0
    assert scale_order_size(limits, 6.0, "sell", 4.0) == 4.0
    assert scale_order_size(limits, 6.0, "sell", 20.0) == 16.0
    assert scale_order_size(limits, -6.0, "sell", 4.0) == pytest.approx(2.8)
    with pytest.raises(InvalidPositionUpdate):
        scale_order_size(limits, 0.0, "hold", 1.0)


def test_breaker_drawdown_and_cooldown():
    ledger = TradingLedger()
    ledger.apply_fill(Fill(side="buy", quantity=10, price=100.0))
    guard = RiskGuard(_limits(), _breaker_config())

    assert guard.evaluate(ledger, 100.0, now=T0).triggered is False
    tripped = guard.evaluate(ledger, 94.0, now=T0 + timedelta(seconds=1))
    assert tripped.triggered is True
    assert "回撤" in tripped.reason

    assert guard.evaluate(ledger, 100.0, now=T0 + timedelta(seconds=30)).triggered is True
    assert guard.order_size(ledger, "buy", 1.0, now=T0 + timedelta(seconds=30)) == 0.0

    resumed = guard.evaluate(ledger, 100.0, now=T0 + timedelta(seconds=62))
    assert resumed.triggered is False
    assert guard.breaker.halted is False


def test_breaker_max_loss():
    ledger = TradingLedger()
    ledger.apply_fill(Fill(side="buy", quantity=10, price=100.0))
    guard = RiskGuard(_limits(), _breaker_config())
    result = guard.evaluate(ledger, 85.0, now=T0)
    assert result.triggered is True
    assert "亏损" in result.reason


def test_breaker_consecutive_losses_from_fills():
    ledger = TradingLedger()
    ledger.apply_fill(Fill(side="buy", quantity=10, price=100.0))
    guard = RiskGuard(_limits(), _breaker_config())
    for _ in range(3):
        guard.record_fill(ledger.apply_fill(Fill(side="sell", quantity=1, price=99.0)))

    assert guard.breaker.consecutive_losses == 3
    result = guard.evaluate(ledger, 99.0, now=T0)
    assert result.triggered is True
    assert "连续" in result.reason


def test_position_limit_reported_when_breaker_quiet():
    ledger = TradingLedger()
    ledger.apply_fill(Fill(side="sell", quantity=12, price=10.0))
    guard = RiskGuard(_limits(), _breaker_config())
    result = guard.evaluate(ledger, 10.0, now=T0)
    assert result.triggered is True
    assert "持仓" in result.reason
    # 空头超限时买入是减仓，不缩量。
    assert guard.order_size(ledger, "buy", 5.0, now=T0) == 5.0


def test_breaker_reset():
    breaker = CircuitBreaker(_breaker_config())
    result = breaker.evaluate(
        RiskInput(position_size=0.0, notional=0.0, pnl_total=-150.0, drawdown=0.0, consecutive_losses=0),
        now=T0,
    )
    assert result.triggered is True
    assert breaker.is_trading_allowed(T0) is False
    breaker.reset()
    assert breaker.is_trading_allowed(T0) is True
