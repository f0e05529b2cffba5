"""核心数据结构：Candle/Side/Order/Market。"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from shared.utils.precision import floor_to_step, format_decimal, truncate_to_precision


@dataclass(frozen=True)
class Candle:
    """已收盘的 K 线（kline）。

    不在类型层面强制 high >= max(open, close) >= min(open, close) >= low，
    由上游数据质量保证；违反时特征计算只会给出退化值。
    """
    symbol: str
    interval: str
    open: float
    high: float
    low: float
    close: float
    start_ts: datetime
    end_ts: datetime
    volume: float = 0.0

    def snapshot(self) -> dict[str, Any]:
        """通知附件用的快照。"""
        return {
            "symbol": self.symbol,
            "interval": self.interval,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "start_ts": self.start_ts.isoformat(),
            "end_ts": self.end_ts.isoformat(),
        }


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class Order:
    """待提交的市价单。

    在构建时就把数量字符串定下来，延迟提交只读取这里的值，不再重新计算。
    """
    symbol: str
    side: Side
    quantity: float
    quantity_str: str
    type: str = "market"
    price: float | None = None  # 触发时的参考价，仅用于日志/资金占用
    reason: str | None = None


@dataclass(frozen=True)
class Market:
    """交易对规则（最小数量/最小金额/精度等）。

    Parameters
    ----------
    min_quantity:
        最小下单数量。
    min_amount:
        最小下单金额（quote 计价）。
    min_notional:
        交易所的最小名义额，与 min_amount 取较大者生效。
    min_lot:
        数量步进（lot size），0 表示只按精度截断。
    max_amount:
        可选的单笔最大金额。
    """
    symbol: str
    base_currency: str
    quote_currency: str
    min_quantity: float = 0.0
    min_amount: float = 0.0
    min_notional: float = 0.0
    min_lot: float = 0.0
    quantity_precision: int = 8
    price_precision: int = 8
    max_amount: float | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def effective_min_amount(self) -> float:
        return max(self.min_amount, self.min_notional)

    @property
    def quantity_step(self) -> float:
        """数量最小增量：lot 与精度中更粗的那个。"""
        precision_step = 10.0 ** (-self.quantity_precision)
        return max(self.min_lot, precision_step)

    def truncate_quantity(self, quantity: float) -> float:
        """向零截断到 lot 与数量精度。"""
        if quantity <= 0:
            return 0.0
        if self.min_lot > 0:
            quantity = floor_to_step(quantity, self.min_lot)
        return truncate_to_precision(quantity, self.quantity_precision)

    def format_quantity(self, quantity: float) -> str:
        return format_decimal(self.truncate_quantity(quantity), self.quantity_precision)

    def format_price(self, price: float) -> str:
        return format_decimal(price, self.price_precision)
