"""交易对规则查询（最小数量/金额、精度）。

策略初始化时查询一次；未知交易对直接抛 `UnknownSymbolError`，启动失败。
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Protocol

from market.models import Market


class UnknownSymbolError(LookupError):
    """交易对不存在。"""


class MarketProvider(Protocol):
    def query_market(self, symbol: str) -> Market: ...


class StaticMarketProvider:
    """配置/测试用的固定交易对表。"""

    def __init__(self, markets: Mapping[str, Market]):
        self.markets = dict(markets)

    def query_market(self, symbol: str) -> Market:
        try:
            return self.markets[symbol]
        except KeyError:
            raise UnknownSymbolError(f"Unknown symbol: {symbol}") from None


def _precision_digits(raw: Any, default: int = 8) -> int:
    """ccxt 的 precision 可能是小数位数，也可能是 tick size（<= 1 的数，1 表示整数步进）。"""
    if raw is None:
        return default
    value = float(raw)
    if 0 < value <= 1:
        return int(round(-math.log10(value)))
    return int(value)


def _precision_step(raw: Any) -> float:
    if raw is None:
        return 0.0
    value = float(raw)
    if 0 < value <= 1:
        return value
    return 0.0


class CcxtMarketProvider:
    """从 ccxt 的 markets 数据构建 `Market`。

    Parameters
    ----------
    exchange:
        ccxt 交易所实例（同步版）。
    symbol_map:
        可选的 "BTCUSDT" -> "BTC/USDT" 映射。
    """

    def __init__(self, exchange: Any, symbol_map: Mapping[str, str] | None = None):
        self.exchange = exchange
        self.symbol_map = dict(symbol_map or {})
        self.markets_loaded = False

    def load_markets(self) -> None:
        if not self.markets_loaded:
            self.exchange.load_markets()
            self.markets_loaded = True

    def query_market(self, symbol: str) -> Market:
        self.load_markets()
        ccxt_symbol = self.symbol_map.get(symbol, symbol)
        markets = getattr(self.exchange, "markets", None) or {}
        info = markets.get(ccxt_symbol)
        if info is None:
            # 也接受交易所原生 id（如 "BTCUSDT"）
            info = next((m for m in markets.values() if m.get("id") == symbol), None)
        if info is None:
            raise UnknownSymbolError(f"Unknown symbol: {symbol}")

        limits = info.get("limits") or {}
        precision = info.get("precision") or {}
        amount_limits = limits.get("amount") or {}
        cost_limits = limits.get("cost") or {}

        min_cost = float(cost_limits.get("min") or 0.0)
        max_cost = cost_limits.get("max")
        return Market(
            symbol=symbol,
            base_currency=str(info.get("base") or ""),
            quote_currency=str(info.get("quote") or ""),
            min_quantity=float(amount_limits.get("min") or 0.0),
            min_amount=min_cost,
            min_notional=min_cost,
            min_lot=_precision_step(precision.get("amount")),
            quantity_precision=_precision_digits(precision.get("amount")),
            price_precision=_precision_digits(precision.get("price")),
            max_amount=float(max_cost) if max_cost else None,
            extra={"ccxt_symbol": info.get("symbol", ccxt_symbol)},
        )
