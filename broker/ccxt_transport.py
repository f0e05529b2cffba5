"""基于 ccxt 的实盘下单通道（现货市价单）。"""

from __future__ import annotations

import asyncio
from typing import Any

import ccxt

from broker.base import BrokerMode, OrderTransport
from market.models import Order
from shared.utils.logging import setup_logger

logger = setup_logger("ccxt-broker")


def build_exchange(name: str, api_key: str | None = None, secret: str | None = None) -> ccxt.Exchange:
    """按 ccxt id 构建交易所实例（同步版，调用放进 executor）。"""
    try:
        exchange_cls = getattr(ccxt, name)
    except AttributeError as exc:
        raise ValueError(f"Unknown ccxt exchange: {name}") from exc
    return exchange_cls({
        "apiKey": api_key,
        "secret": secret,
        "enableRateLimit": True,
        "options": {"defaultType": "spot"},
    })


class CcxtOrderTransport(OrderTransport):
    """
    Parameters
    ----------
    exchange:
        ccxt 交易所实例。
    symbol_map:
        可选的 "BTCUSDT" -> "BTC/USDT" 映射；缺省时原样传给 ccxt。
    """

    mode = BrokerMode.LIVE

    def __init__(self, exchange: Any, symbol_map: dict[str, str] | None = None):
        self.exchange = exchange
        self.symbol_map = dict(symbol_map or {})

    async def submit_order(self, order: Order) -> dict[str, Any]:
        symbol = self.symbol_map.get(order.symbol, order.symbol)
        loop = asyncio.get_running_loop()
        try:
            res = await loop.run_in_executor(
                None,
                self.exchange.create_order,
                symbol,
                order.type,
                order.side.value,
                float(order.quantity_str),
            )
        except ccxt.BaseError as e:
            logger.error(f"❌ Order failed: {order.side.value} {symbol} {order.quantity_str}: {e}")
            raise
        logger.info(f"✅ Order placed: {order.side.value} {symbol} {order.quantity_str} id={res.get('id')}")
        return res


def fetch_free_balances(exchange: Any) -> dict[str, float]:
    """读取交易所可用余额（ccxt fetch_balance 的 free 部分），只保留正数。"""
    balance = exchange.fetch_balance()
    free = balance.get("free") if isinstance(balance, dict) else None
    result: dict[str, float] = {}
    if isinstance(free, dict):
        for currency, amount in free.items():
            try:
                amount_f = float(amount or 0.0)
            except (TypeError, ValueError):
                continue
            if amount_f > 0:
                result[currency] = amount_f
    return result
