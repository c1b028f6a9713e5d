from __future__ import annotations

import logging
import math

from asmm.core.numeric import PRICE_EPSILON, ensure_finite
from asmm.errors import InvalidConfiguration, InvalidMarketState, InvalidQuoteGeneration, NumericalError
from asmm.models import Quote, QuoteDecision
from asmm.schemas import MarketState, StrategyConfig


def _time_remaining(config: StrategyConfig, market_state: MarketState) -> float:
    # 未按 config 构造的 MarketState 在这里补查期限。
    if market_state.time_elapsed > config.time_horizon:
        raise InvalidMarketState(
            f"time_elapsed({market_state.time_elapsed}) 超过 time_horizon({config.time_horizon})",
            field="time_elapsed",
        )
    return ensure_finite(market_state.time_remaining(config), "time_remaining")


def _inventory_risk(config: StrategyConfig, tau: float) -> float:
    # 用乘法而不是 ** 2，溢出时得到 inf 而不是 OverflowError。
    return ensure_finite(config.gamma * config.sigma * config.sigma * tau, "inventory_risk")


def compute_reservation_price(config: StrategyConfig, market_state: MarketState, inventory_size: float) -> float:
    """r = s - q * gamma * sigma^2 * (T - t)

    多头库存压低 r，空头库存抬高 r，零库存时 r 等于中间价。
    """
    q = ensure_finite(inventory_size, "inventory_size")
    tau = _time_remaining(config, market_state)
    shift = ensure_finite(q * _inventory_risk(config, tau), "inventory_shift")
    return ensure_finite(market_state.mid_price - shift, "reservation_price", positive=True)


def compute_optimal_spread(config: StrategyConfig, market_state: MarketState) -> float:
    """delta = gamma * sigma^2 * (T - t) + (2 / gamma) * ln(1 + gamma / k)

    返回完整的 bid-ask 宽度，报价取 r ± delta / 2。
    """
    tau = _time_remaining(config, market_state)
    inventory_term = _inventory_risk(config, tau)

    ratio = ensure_finite(config.gamma / config.k, "gamma_over_k")
    if 1.0 + ratio <= 0:
        raise NumericalError(f"ln 参数非正(1 + gamma/k = {1.0 + ratio})", field="gamma_over_k")
    # 先乘后除，gamma 极小时不会出现 inf * 0。
    adverse_term = ensure_finite(2.0 * math.log1p(ratio) / config.gamma, "adverse_selection")

    return ensure_finite(inventory_term + adverse_term, "spread", positive=True, error=InvalidConfiguration)


def _assemble_quote(reservation_price: float, spread: float) -> Quote:
    half = spread / 2
    bid = ensure_finite(reservation_price - half, "bid_price")
    ask = ensure_finite(reservation_price + half, "ask_price")
    if bid <= 0:
        raise InvalidQuoteGeneration(f"bid 必须为正，实际为 {bid}", field="bid_price")
    if ask - bid <= PRICE_EPSILON:
        raise InvalidQuoteGeneration(f"bid({bid}) 必须小于 ask({ask})", field="ask_price")
    return Quote(bid_price=bid, ask_price=ask)


def compute_optimal_quotes(config: StrategyConfig, market_state: MarketState, inventory_size: float) -> Quote:
    reservation = compute_reservation_price(config, market_state, inventory_size)
    spread = compute_optimal_spread(config, market_state)
    return _assemble_quote(reservation, spread)


class AsMarketMakerModel:
    """Avellaneda-Stoikov 报价模型。"""

    def __init__(self) -> None:
        self._logger = logging.getLogger("engine")

    def compute_quote(
        self,
        config: StrategyConfig,
        market_state: MarketState,
        inventory_size: float,
    ) -> QuoteDecision:
        reservation = compute_reservation_price(config, market_state, inventory_size)
        spread = compute_optimal_spread(config, market_state)
        quote = _assemble_quote(reservation, spread)

        self._logger.debug(
            "报价 mid=%.6f q=%.6f r=%.6f spread=%.6f bid=%.6f ask=%.6f",
            market_state.mid_price,
            inventory_size,
            reservation,
            spread,
            quote.bid_price,
            quote.ask_price,
        )
        return QuoteDecision(
            quote=quote,
            reservation_price=reservation,
            spread=spread,
            inventory_size=float(inventory_size),
            time_remaining=market_state.time_remaining(config),
        )
