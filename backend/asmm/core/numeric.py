from __future__ import annotations

import math

from asmm.errors import MarketMakingError, NumericalError

# bid/ask 最小间隔，以及判断“恰好平仓”时的相对容差。
PRICE_EPSILON = 1e-12
QUANTITY_EPSILON = 1e-12


def ensure_finite(
    value: float,
    name: str,
    *,
    positive: bool = False,
    error: type[MarketMakingError] = NumericalError,
) -> float:
    """统一的有限性/范围检查，所有计算结果返回前都经过这里。"""
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise NumericalError(f"无法转换为数值({value!r})", field=name) from exc
    if not math.isfinite(value):
        raise NumericalError(f"结果非有限值({value})", field=name)
    if positive and value <= 0:
        raise error(f"必须为正数，实际为 {value}", field=name)
    return value


def sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def same_magnitude(a: float, b: float) -> bool:
    return math.isclose(abs(a), abs(b), rel_tol=QUANTITY_EPSILON, abs_tol=QUANTITY_EPSILON)
