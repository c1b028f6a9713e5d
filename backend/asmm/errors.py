from __future__ import annotations


class MarketMakingError(ValueError):
    """报价/持仓计算失败的基类，调用方按子类区分处理。"""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        if field:
            message = f"{field}: {message}"
        super().__init__(message)


class InvalidConfiguration(MarketMakingError):
    """模型参数（gamma/sigma/k/time_horizon）非法，或推导出的价差非正。"""


class InvalidMarketState(MarketMakingError):
    """中间价非正，或已流逝时间为负/超过期限。"""


class InvalidPositionUpdate(MarketMakingError):
    """成交数量或价格非正。"""


class NumericalError(MarketMakingError):
    """中间值或结果出现 NaN/inf，或超出有意义的范围。"""


class InvalidQuoteGeneration(MarketMakingError):
    """计算得到的 bid >= ask 或价格非正，说明上游数值有缺陷。"""
