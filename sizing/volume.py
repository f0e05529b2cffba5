"""按价格变化幅度与历史高低点计算下单数量。

曲线
----
- 变化幅度因子：``min(change_cap, exp(|change| / (range * change_flatness)))``
- 买入修正：``min(buy_cap, exp(-(price - low * (1 - pessimism)) / (range * buy_flatness)))``，
  价格越接近/跌破悲观目标价，买得越多。
- 卖出修正：``min(sell_cap, exp((price - high * (1 + optimism)) / (range * sell_flatness)))``，
  价格越接近/突破乐观目标价，卖得越多。

``quantity = base_quantity * 幅度因子 * 方向修正``，随后按交易对规则裁剪。
其中 range = historical_high - historical_low；range 不可用时各因子退化为 1。
"""

from __future__ import annotations

import math

from market.models import Market, Side
from shared.config.schema import VolumeConfig
from shared.utils.precision import ceil_to_step
from sizing.errors import BelowMinNotionalError


def _capped_exp(x: float, cap: float) -> float:
    """min(cap, exp(x))；在对数空间比较，x 很大时不会溢出。"""
    if x >= math.log(cap):
        return cap
    return math.exp(x)


class VolumeCalculator:
    """单个交易对的数量计算器，持有单调扩张的历史高低点。"""

    def __init__(
        self,
        market: Market,
        cfg: VolumeConfig,
        historical_high: float | None = None,
        historical_low: float | None = None,
    ):
        self.market = market
        self.cfg = cfg
        self.historical_high = historical_high
        self.historical_low = historical_low

    def update_anchors(self, high: float, low: float) -> None:
        """high = max(high, new)，low = min(low, new)；观测区间只会扩大。"""
        self.historical_high = high if self.historical_high is None else max(self.historical_high, high)
        self.historical_low = low if self.historical_low is None else min(self.historical_low, low)

    @property
    def historical_range(self) -> float:
        if self.historical_high is None or self.historical_low is None:
            return 0.0
        return max(0.0, self.historical_high - self.historical_low)

    def change_factor(self, change: float) -> float:
        rng = self.historical_range
        flatness = rng * self.cfg.change_flatness
        if flatness <= 0:
            return 1.0
        return _capped_exp(abs(change) / flatness, self.cfg.change_cap)

    def buy_modifier(self, price: float) -> float:
        rng = self.historical_range
        flatness = rng * self.cfg.buy_flatness
        if flatness <= 0 or self.historical_low is None:
            return 1.0
        target = self.historical_low * (1 - self.cfg.pessimism)
        return _capped_exp(-(price - target) / flatness, self.cfg.buy_cap)

    def sell_modifier(self, price: float) -> float:
        rng = self.historical_range
        flatness = rng * self.cfg.sell_flatness
        if flatness <= 0 or self.historical_high is None:
            return 1.0
        target = self.historical_high * (1 + self.cfg.optimism)
        return _capped_exp((price - target) / flatness, self.cfg.sell_cap)

    def raw_quantity(self, price: float, change: float, side: Side) -> float:
        modifier = self.sell_modifier(price) if side == Side.SELL else self.buy_modifier(price)
        return self.cfg.base_quantity * self.change_factor(change) * modifier

    def quantity(
        self,
        price: float,
        change: float,
        side: Side,
        *,
        max_amount: float | None = None,
        max_quantity: float | None = None,
    ) -> float:
        """计算最终下单数量。

        Parameters
        ----------
        price:
            当前价格（触发 K 线的收盘价）。
        change:
            带符号的价格变化。
        side:
            买/卖方向。
        max_amount:
            可选的最大名义额（来自交易对规则、配置或可用余额）。
        max_quantity:
            可选的最大数量（卖出时的可用/可盈利库存）。

        Raises
        ------
        BelowMinNotionalError
            在上限约束下无法满足最小数量/最小金额。
        """
        if price <= 0:
            raise BelowMinNotionalError(f"invalid price {price}")

        market = self.market
        min_amount = market.effective_min_amount
        ceilings = [a for a in (market.max_amount, max_amount) if a is not None]
        amount_ceiling = min(ceilings) if ceilings else None

        quantity = max(self.raw_quantity(price, change, side), market.min_quantity)

        if quantity * price < min_amount:
            quantity = min_amount / price

        if amount_ceiling is not None and quantity * price > amount_ceiling:
            quantity = amount_ceiling / price

        if max_quantity is not None:
            quantity = min(quantity, max_quantity)

        quantity = market.truncate_quantity(quantity)

        # 截断后可能掉到最小金额以下：补到满足最小金额的最小步进数量
        if quantity * price < min_amount or quantity < market.min_quantity:
            bumped = ceil_to_step(max(min_amount / price, market.min_quantity), market.quantity_step)
            if amount_ceiling is not None and bumped * price > amount_ceiling:
                raise BelowMinNotionalError(
                    f"min amount {min_amount:.2f} exceeds allowed amount {amount_ceiling:.2f}"
                )
            if max_quantity is not None and bumped > max_quantity:
                raise BelowMinNotionalError(
                    f"min quantity {bumped} exceeds available quantity {max_quantity}"
                )
            quantity = bumped

        if quantity <= 0:
            raise BelowMinNotionalError("quantity truncated to zero")
        return quantity
