"""K 线行情源（离线回放 / Binance REST + WebSocket）。

行情源只负责按 interval 时间顺序推送“已收盘”的 K 线；
不同 interval 之间的先后顺序不作保证。
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, Sequence

import requests
import websockets

from market.models import Candle
from shared.utils.logging import setup_logger


def _ms_to_dt(ms: int | float) -> datetime:
    return datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)


def parse_binance_kline(msg: dict[str, Any]) -> Candle | None:
    """解析 Binance kline 推送；未收盘（k.x == false）或非 kline 消息返回 None。

    同时兼容组合流（{"stream": ..., "data": {...}}）与单流格式。
    """
    data = msg.get("data", msg)
    if data.get("e") != "kline":
        return None
    k = data.get("k") or {}
    if not k.get("x"):
        return None
    return Candle(
        symbol=str(k.get("s") or data.get("s")),
        interval=str(k["i"]),
        open=float(k["o"]),
        high=float(k["h"]),
        low=float(k["l"]),
        close=float(k["c"]),
        volume=float(k.get("v") or 0.0),
        start_ts=_ms_to_dt(k["t"]),
        end_ts=_ms_to_dt(k["T"]),
    )


def parse_rest_kline(symbol: str, interval: str, row: Sequence[Any]) -> Candle:
    """解析 /api/v3/klines 的一行。"""
    return Candle(
        symbol=symbol,
        interval=interval,
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]),
        start_ts=_ms_to_dt(row[0]),
        end_ts=_ms_to_dt(row[6]),
    )


class KLineSource(ABC):
    """K 线行情源抽象基类。"""

    @abstractmethod
    def query_klines(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        """查询最近 limit 根已收盘 K 线（时间升序）。"""

    @abstractmethod
    def stream(self, symbol: str, intervals: Iterable[str]) -> AsyncIterator[Candle]:
        """按收盘顺序推送 K 线。"""


class ReplayKLineSource(KLineSource):
    """离线回放：历史与实时流都来自内存列表，便于 dry-run/测试。"""

    def __init__(self, history: Iterable[Candle] = (), live: Iterable[Candle] = ()):
        self.history = list(history)
        self.live = list(live)

    def query_klines(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        rows = [c for c in self.history if c.symbol == symbol and c.interval == interval]
        rows.sort(key=lambda c: c.start_ts)
        return rows[-limit:] if limit > 0 else rows

    async def stream(self, symbol: str, intervals: Iterable[str]) -> AsyncIterator[Candle]:
        wanted = set(intervals)
        for candle in self.live:
            if candle.symbol == symbol and candle.interval in wanted:
                yield candle
                await asyncio.sleep(0)


class BinanceKLineSource(KLineSource):
    """Binance 现货 K 线：REST 拉历史，WebSocket 组合流推送收盘 K 线。"""

    def __init__(
        self,
        rest_url: str = "https://api.binance.com",
        ws_url: str = "wss://stream.binance.com:9443/stream",
        reconnect_delay: float = 3.0,
        logger=None,
    ):
        self.rest_url = rest_url.rstrip("/")
        self.ws_url = ws_url
        self.reconnect_delay = reconnect_delay
        self.logger = logger or setup_logger("market-binance")

    def query_klines(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        url = f"{self.rest_url}/api/v3/klines"
        params: dict[str, Any] = {"symbol": symbol, "interval": interval}
        if limit > 0:
            params["limit"] = min(limit, 1000)
        resp = requests.get(url, params=params, timeout=10)
        resp.raise_for_status()
        now = datetime.now(timezone.utc)
        candles = [parse_rest_kline(symbol, interval, row) for row in resp.json()]
        # 最后一根通常还没收盘
        return [c for c in candles if c.end_ts <= now]

    def stream_url(self, symbol: str, intervals: Iterable[str]) -> str:
        streams = "/".join(f"{symbol.lower()}@kline_{i}" for i in intervals)
        return f"{self.ws_url}?streams={streams}"

    async def stream(self, symbol: str, intervals: Iterable[str]) -> AsyncIterator[Candle]:
        url = self.stream_url(symbol, list(intervals))
        while True:
            try:
                async with websockets.connect(url) as ws:
                    self.logger.info("Connected to Binance WS: %s", url)
                    async for raw in ws:
                        candle = parse_binance_kline(json.loads(raw))
                        if candle is not None:
                            yield candle
            except (OSError, websockets.WebSocketException) as exc:  # pragma: no cover - 网络异常重连
                self.logger.warning("WS error %s, reconnecting in %.0fs...", exc, self.reconnect_delay)
                await asyncio.sleep(self.reconnect_delay)


def get_kline_source(exchange_name: str, rest_url: str | None = None, ws_url: str | None = None) -> KLineSource:
    """根据配置选择行情源（dry-run 同样使用真实行情，只有下单是模拟的）。"""
    ex_l = exchange_name.lower()
    if ex_l == "binance":
        return BinanceKLineSource(
            rest_url=rest_url or "https://api.binance.com",
            ws_url=ws_url or "wss://stream.binance.com:9443/stream",
        )
    raise ValueError(f"Unsupported kline source: {exchange_name}")
