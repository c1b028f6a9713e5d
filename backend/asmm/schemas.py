from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from asmm.errors import (
    InvalidConfiguration,
    InvalidMarketState,
    InvalidPositionUpdate,
    MarketMakingError,
)


def _translate(exc: ValidationError, error_type: type[MarketMakingError]) -> MarketMakingError:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return error_type(first.get("msg", str(exc)), field=field)


def _require_number(value: Any) -> Any:
    # 不接受 True/"0.1" 这类隐式转换。
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"必须为数值，实际为 {type(value).__name__}")
    return value


Number = Annotated[float, BeforeValidator(_require_number)]


class ValidatedModel(BaseModel):
    """构造即校验的不可变值；校验失败统一转换为领域异常。"""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False, extra="forbid")

    error_type: ClassVar[type[MarketMakingError]] = MarketMakingError

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise _translate(exc, type(self).error_type) from exc


class StrategyConfig(ValidatedModel):
    """Avellaneda-Stoikov 模型参数，构造后只读。"""

    error_type: ClassVar[type[MarketMakingError]] = InvalidConfiguration

    gamma: Number = Field(gt=0, description="风险厌恶系数")
    sigma: Number = Field(gt=0, description="波动率")
    k: Number = Field(gt=0, description="订单到达强度")
    time_horizon: Number = Field(gt=0, description="终止时刻 T")

    def with_overrides(self, **changes: float) -> StrategyConfig:
        # model_copy(update=...) 不做校验，这里重新走一遍构造。
        merged = self.model_dump()
        merged.update(changes)
        return type(self)(**merged)

    def market_state(self, mid_price: float, time_elapsed: float) -> MarketState:
        return MarketState.observe(self, mid_price=mid_price, time_elapsed=time_elapsed)


class MarketState(ValidatedModel):
    """单个时点的市场快照，只替换不修改。"""

    error_type: ClassVar[type[MarketMakingError]] = InvalidMarketState

    mid_price: Number = Field(gt=0)
    time_elapsed: Number = Field(ge=0)

    @classmethod
    def observe(cls, config: StrategyConfig, mid_price: float, time_elapsed: float) -> MarketState:
        state = cls(mid_price=mid_price, time_elapsed=time_elapsed)
        if state.time_elapsed > config.time_horizon:
            raise InvalidMarketState(
                f"time_elapsed({state.time_elapsed}) 超过 time_horizon({config.time_horizon})",
                field="time_elapsed",
            )
        return state

    def time_remaining(self, config: StrategyConfig) -> float:
        return config.time_horizon - self.time_elapsed


class Fill(ValidatedModel):
    error_type: ClassVar[type[MarketMakingError]] = InvalidPositionUpdate

    side: Literal["buy", "sell"]
    quantity: Number = Field(gt=0)
    price: Number = Field(gt=0)
    timestamp: datetime | None = None

    @property
    def signed_quantity(self) -> float:
        return self.quantity if self.side == "buy" else -self.quantity


class RiskLimits(ValidatedModel):
    """单会话持仓限额。"""

    error_type: ClassVar[type[MarketMakingError]] = InvalidConfiguration

    max_position: Number = Field(gt=0, description="最大绝对持仓")
    max_notional: Number = Field(gt=0, description="最大名义敞口")
    scaling_factor: Number = Field(default=0.5, ge=0, le=1, description="接近限额时的下单缩量系数")


class CircuitBreakerConfig(ValidatedModel):
    error_type: ClassVar[type[MarketMakingError]] = InvalidConfiguration

    max_loss: Number = Field(gt=0, description="总盈亏低于 -max_loss 时熔断")
    max_drawdown: Number = Field(gt=0, description="相对盈亏峰值的最大回撤")
    max_consecutive_losses: int = Field(default=5, ge=1, strict=True)
    cooldown_sec: Number = Field(default=60.0, ge=0)
