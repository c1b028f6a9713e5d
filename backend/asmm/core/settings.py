from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from asmm.schemas import StrategyConfig

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class Settings(BaseSettings):
    """默认模型参数与日志配置，只用于构造 StrategyConfig，引擎本身不读取。"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", env_prefix="ASMM_", extra="ignore")

    gamma: float = 0.1
    sigma: float = 2.0
    k: float = 1.5
    time_horizon: float = 1.0

    log_level: str = Field(default="INFO")
    log_format: str = LOG_FORMAT

    def to_strategy_config(self) -> StrategyConfig:
        return StrategyConfig(
            gamma=self.gamma,
            sigma=self.sigma,
            k=self.k,
            time_horizon=self.time_horizon,
        )


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
