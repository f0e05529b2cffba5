"""配置架构定义（Pydantic Schema）。

目标：
- 让配置成为“强类型”的边界协议，启动阶段尽早失败；
- 每个配置块都 `extra="forbid"`，typo 直接报错而不是被静默忽略；
- 检测器列表、基础数量、窗口长度、冷却时间都是启动时的静态配置，运行期不做热更新。
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from strategy.detector import KLineDetector


class ExchangeConfig(BaseModel):
    """交易所配置（ccxt id + 行情地址）。"""
    name: str = "binance"
    rest_url: str = "https://api.binance.com"
    ws_url: str = "wss://stream.binance.com:9443/stream"

    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    # 默认干跑：只打印订单，不真正下单
    dry_run: bool = True
    # 干跑时的初始余额（币种 -> 数量）
    dry_run_balances: Dict[str, float] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class MarketConfig(BaseModel):
    """手工指定的交易对规则；缺省时从交易所查询。"""
    base_currency: str
    quote_currency: str
    min_quantity: float = 0.0
    min_amount: float = 0.0
    min_notional: float = 0.0
    min_lot: float = 0.0
    quantity_precision: int = 8
    price_precision: int = 8
    max_amount: Optional[float] = None
    model_config = ConfigDict(extra="forbid")


class VolumeConfig(BaseModel):
    """数量曲线参数（见 `sizing.volume`）。"""
    base_quantity: float = Field(default=0.01, gt=0)
    change_flatness: float = Field(default=0.22, gt=0)
    change_cap: float = Field(default=2.0, gt=0)
    buy_flatness: float = Field(default=0.36, gt=0)
    buy_cap: float = Field(default=1.0, gt=0)
    pessimism: float = 0.1
    sell_flatness: float = Field(default=0.21, gt=0)
    sell_cap: float = Field(default=1.0, gt=0)
    optimism: float = 0.2
    model_config = ConfigDict(extra="forbid")


class SizingConfig(BaseModel):
    """账户侧约束。

    - quote_reserve：quote 币种保留额，买入只能用超出部分；
    - max_amount：单笔最大名义额；
    - min_profit_spread：设置后卖出只卖成本低于 `price - fee - spread` 的库存。
    """
    quote_reserve: float = Field(default=0.0, ge=0)
    max_amount: Optional[float] = Field(default=None, gt=0)
    fee_rate: float = Field(default=0.001, ge=0)
    min_profit_spread: Optional[float] = Field(default=None, ge=0)
    model_config = ConfigDict(extra="forbid")


class CooldownConfig(BaseModel):
    """SKIP 通知去重的冷却时间（秒）。"""
    text_seconds: float = Field(default=30 * 60, ge=0)
    object_seconds: float = Field(default=10 * 60, ge=0)
    model_config = ConfigDict(extra="forbid")


class StrategyConfig(BaseModel):
    """K 线策略配置。"""
    symbol: str = "BTCUSDT"
    intervals: List[str] = Field(default_factory=lambda: ["1m", "5m", "1h", "1d"])
    # 0 表示窗口不限长
    window_size: int = Field(default=500, ge=0)
    anchor_interval: str = "1d"
    anchor_frames: int = Field(default=60, ge=1)
    detectors: List[KLineDetector] = Field(default_factory=list)
    volume: VolumeConfig = Field(default_factory=VolumeConfig)
    sizing: SizingConfig = Field(default_factory=SizingConfig)
    cooldown: CooldownConfig = Field(default_factory=CooldownConfig)
    market: Optional[MarketConfig] = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_intervals(self) -> "StrategyConfig":
        missing = sorted({d.interval for d in self.detectors} - set(self.intervals))
        if missing:
            raise ValueError(f"detectors use intervals not subscribed: {', '.join(missing)}")
        if self.anchor_interval not in self.intervals:
            raise ValueError(f"anchor_interval {self.anchor_interval} is not subscribed")
        return self


class NotifierConfig(BaseModel):
    """通知配置；未设置 webhook 时只写日志。"""
    slack_webhook_url: Optional[str] = None
    timeout: float = 5.0
    model_config = ConfigDict(extra="forbid")


class AppConfig(BaseModel):
    """应用总配置。"""
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    notifier: NotifierConfig = Field(default_factory=NotifierConfig)
    log_level: str = "INFO"

    model_config = ConfigDict(extra="forbid")
