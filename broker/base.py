"""下单通道抽象与共享交易上下文（余额/均价/库存）。"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from market.models import Order, Side


class BrokerMode(Enum):
    """下单通道运行模式。"""

    DRY_RUN = "dry-run"
    LIVE = "live"


class OrderTransport(ABC):
    """订单提交通道。

    失败时直接抛异常，由策略层上报通知；通道本身不负责重试以外的语义。
    """

    mode: BrokerMode

    @abstractmethod
    async def submit_order(self, order: Order) -> dict[str, Any]:
        """提交订单，返回交易所/模拟回执。"""


@dataclass
class InventoryLot:
    """一笔买入形成的库存批次。"""
    price: float
    quantity: float


class TradingContext:
    """账户侧共享状态。

    多条事件处理路径（不同交易对、连接状态回调）可能同时读写，
    “读余额 -> 决定数量 -> 占用资金”必须在同一把锁内完成；
    网络提交不在锁内。

    用法::

        with ctx:
            avail = ctx.available("USDT")
            ...
            ctx.hold("USDT", amount)
    """

    def __init__(
        self,
        balances: dict[str, float] | None = None,
        average_bid_price: float = 0.0,
        average_ask_price: float = 0.0,
        lots: list[InventoryLot] | None = None,
    ):
        self._lock = threading.Lock()
        self.balances: dict[str, float] = dict(balances or {})
        self.held: dict[str, float] = {}
        self.average_bid_price = average_bid_price
        self.average_ask_price = average_ask_price
        self.lots: list[InventoryLot] = list(lots or [])
        self._bought_qty = sum(lot.quantity for lot in self.lots)
        self._sold_qty = 0.0

    def lock(self) -> None:
        self._lock.acquire()

    def unlock(self) -> None:
        self._lock.release()

    def __enter__(self) -> "TradingContext":
        self.lock()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unlock()

    def set_balance(self, currency: str, amount: float) -> None:
        self.balances[currency] = float(amount)

    def available(self, currency: str) -> float:
        return max(0.0, self.balances.get(currency, 0.0) - self.held.get(currency, 0.0))

    def hold(self, currency: str, amount: float) -> None:
        """为已决定的订单占用资金，避免并发路径重复使用同一笔余额。"""
        if amount <= 0:
            return
        self.held[currency] = self.held.get(currency, 0.0) + amount

    def release(self, currency: str, amount: float) -> None:
        left = self.held.get(currency, 0.0) - amount
        if left > 1e-12:
            self.held[currency] = left
        else:
            self.held.pop(currency, None)

    def profitable_quantity(self, target_price: float) -> float:
        """成本低于 target_price 的库存数量之和。"""
        return sum(lot.quantity for lot in self.lots if lot.price < target_price)

    def apply_fill(self, side: Side, base: str, quote: str, quantity: float, price: float) -> None:
        """本地应用一笔市价成交：调整 base/quote 余额并记账。

        实盘下余额最终以交易所快照为准，这里只是让后续的下单决策不必等待账户推送。
        """
        notional = quantity * price
        if side == Side.BUY:
            self.balances[quote] = self.balances.get(quote, 0.0) - notional
            self.balances[base] = self.balances.get(base, 0.0) + quantity
        else:
            self.balances[base] = self.balances.get(base, 0.0) - quantity
            self.balances[quote] = self.balances.get(quote, 0.0) + notional
        self.record_fill(side, quantity, price)

    def record_fill(self, side: Side, quantity: float, price: float) -> None:
        """本地记账一笔成交：更新均价与库存批次（卖出优先消耗成本最低的批次）。"""
        if quantity <= 0 or price <= 0:
            return
        if side == Side.BUY:
            total = self._bought_qty + quantity
            self.average_bid_price = (self.average_bid_price * self._bought_qty + price * quantity) / total
            self._bought_qty = total
            self.lots.append(InventoryLot(price=price, quantity=quantity))
            return

        total = self._sold_qty + quantity
        self.average_ask_price = (self.average_ask_price * self._sold_qty + price * quantity) / total
        self._sold_qty = total

        remaining = quantity
        for lot in sorted(self.lots, key=lambda x: x.price):
            if remaining <= 0:
                break
            used = min(lot.quantity, remaining)
            lot.quantity -= used
            remaining -= used
        self.lots = [lot for lot in self.lots if lot.quantity > 1e-12]
