"""Dry-run 下单通道。

不触网，只记录并打印订单，供 dry-run 与测试使用。
"""

from __future__ import annotations

from typing import Any

from broker.base import BrokerMode, OrderTransport
from market.models import Order
from shared.utils.logging import setup_logger


class DryRunTransport(OrderTransport):
    """干跑模式的下单通道。"""

    mode = BrokerMode.DRY_RUN

    def __init__(self):
        self.logger = setup_logger("dry-run-broker")
        self.orders: list[Order] = []

    async def submit_order(self, order: Order) -> dict[str, Any]:
        self.logger.info(
            f"[DRY ORDER] {order.side.value.upper()} {order.symbol} qty={order.quantity_str} reason={order.reason}"
        )
        self.orders.append(order)
        return {
            "status": "accepted",
            "id": f"dry-{len(self.orders)}",
            "symbol": order.symbol,
            "side": order.side.value,
            "type": order.type,
            "amount": order.quantity_str,
        }
