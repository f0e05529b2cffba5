"""K 线形态策略：窗口维护 -> 检测器 -> 通知去重 -> 下单规模 -> 下单。

同一交易对的收盘事件必须串行处理（窗口与历史高低点不支持并发写）；
不同交易对各自持有一个策略实例，可以并行。
"""

from __future__ import annotations

import asyncio
from typing import Any

from broker.base import OrderTransport, TradingContext
from market import features
from market.client import KLineSource
from market.metadata import MarketProvider
from market.models import Candle, Market, Order, Side
from market.window import CandleWindow
from shared.config.schema import StrategyConfig
from shared.state.freshness import FreshnessCache
from shared.utils.logging import setup_logger
from shared.utils.notifier import LoggingNotifier, Notifier
from sizing.errors import SizingError
from sizing.sizer import hold_currency, size_order
from sizing.volume import VolumeCalculator
from strategy.detector import Detection
from strategy.engine import DetectorEngine


def trend_icon(trend: int) -> str:
    if trend > 0:
        return "📈"
    if trend < 0:
        return "📉"
    return "➖"


class KLineStrategy:
    """
    Parameters
    ----------
    cfg:
        策略配置（检测器、窗口长度、曲线/账户约束、冷却时间）。
    market:
        交易对规则。
    ctx:
        共享交易上下文。
    transport:
        下单通道。
    notifier:
        通知出口，默认只写日志。
    cache:
        通知去重缓存，测试里可注入带假时钟的实例。
    """

    def __init__(
        self,
        cfg: StrategyConfig,
        market: Market,
        ctx: TradingContext,
        transport: OrderTransport,
        notifier: Notifier | None = None,
        cache: FreshnessCache | None = None,
    ):
        self.cfg = cfg
        self.symbol = cfg.symbol
        self.market = market
        self.ctx = ctx
        self.transport = transport
        self.notifier = notifier or LoggingNotifier()
        self.cache = cache or FreshnessCache()
        self.logger = setup_logger("kline-strategy")

        self.engine = DetectorEngine(cfg.detectors)
        self.calculator = VolumeCalculator(market, cfg.volume)
        self.windows: dict[str, CandleWindow] = {interval: CandleWindow() for interval in cfg.intervals}
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_provider(
        cls,
        cfg: StrategyConfig,
        provider: MarketProvider,
        ctx: TradingContext,
        transport: OrderTransport,
        **kwargs: Any,
    ) -> "KLineStrategy":
        """查询交易对规则后构建；未知交易对抛 `UnknownSymbolError`，启动失败。"""
        market = provider.query_market(cfg.symbol)
        return cls(cfg, market, ctx, transport, **kwargs)

    def initialize(self, source: KLineSource) -> None:
        """用历史 K 线预热每个 interval 的窗口，并设定历史高低点。"""
        for interval in self.cfg.intervals:
            window = self.windows[interval]
            for candle in source.query_klines(self.symbol, interval, self.cfg.window_size):
                window.add(candle)
            window.truncate(self.cfg.window_size)
            self.logger.info(f"Warmed up {self.symbol} {interval} window with {len(window)} klines")

        anchor_window = self.windows.get(self.cfg.anchor_interval)
        if anchor_window:
            recent = anchor_window.tail(self.cfg.anchor_frames)
            self.calculator.update_anchors(recent.high, recent.low)
            self.logger.info(
                f"Historical anchors from {len(recent)} x {self.cfg.anchor_interval}: "
                f"low={recent.low} high={recent.high}"
            )

    def add_kline(self, candle: Candle) -> CandleWindow:
        window = self.windows.setdefault(candle.interval, CandleWindow())
        window.add(candle)
        window.truncate(self.cfg.window_size)
        return window

    async def on_kline_closed(self, candle: Candle) -> list[Order]:
        """处理一根收盘 K 线，返回本事件派发（或排期）的订单。"""
        if candle.symbol != self.symbol:
            return []

        window = self.add_kline(candle)
        self.calculator.update_anchors(candle.high, candle.low)

        trend = features.trend(candle)
        # 价格没变，不动作
        if trend == 0:
            return []

        icon = trend_icon(trend)
        orders: list[Order] = []
        for detection in self.engine.iter_detections(candle, window, self.ctx.average_bid_price):
            detector = detection.detector
            attachments = (detector.attachment(), detection.view.snapshot())

            if not detection.ok:
                if not detection.reason:
                    continue
                if self.cache.should_notify(
                    detection.reason,
                    detector,
                    text_ttl=self.cfg.cooldown.text_seconds,
                    object_ttl=self.cfg.cooldown.object_seconds,
                ):
                    self.notifier.notify(f"{icon} *SKIP* reason: {detection.reason}", *attachments)
                else:
                    self.logger.debug(f"Suppressed repeated skip: {detection.reason}")
                continue

            message = f"{icon} *TRIGGERED*"
            if detection.reason:
                message += f" reason: {detection.reason}"
            self.logger.info(f"{message} {detector.describe()}")
            self.notifier.notify(message, *attachments)

            order = self.new_order(detection)
            if order is None:
                continue
            await self.dispatch(order, detector.delay_ms)
            orders.append(order)

        return orders

    def new_order(self, detection: Detection) -> Order | None:
        """按评估视图的趋势定方向（跌买涨卖），再计算数量；规模计算失败返回 None。"""
        view = detection.view
        trend = features.trend(view)
        if trend == 0:
            return None
        side = Side.BUY if trend < 0 else Side.SELL

        try:
            return size_order(
                self.calculator,
                self.ctx,
                self.cfg.sizing,
                price=view.close,
                change=features.change(view),
                side=side,
                reason=detection.detector.describe(),
            )
        except SizingError as exc:
            self.logger.warning(f"Skip {side.value} {self.symbol}: {exc}")
            self.notifier.notify(
                f"{trend_icon(trend)} *SKIP ORDER* {side.value} {self.symbol}: {exc}",
                detection.detector.attachment(),
            )
            return None

    async def dispatch(self, order: Order, delay_ms: int = 0) -> None:
        """立即提交，或在 delay_ms 后提交（fire-and-forget，不支持取消）。"""
        if delay_ms > 0:
            task = asyncio.create_task(self._submit_later(order, delay_ms / 1000))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return
        await self.submit(order)

    async def _submit_later(self, order: Order, delay_s: float) -> None:
        await asyncio.sleep(delay_s)
        await self.submit(order)

    async def submit(self, order: Order) -> dict[str, Any] | None:
        """提交订单；失败只通知并释放占用资金，不重试。"""
        currency, amount = hold_currency(order, self.calculator)
        try:
            res = await self.transport.submit_order(order)
        except Exception as exc:
            with self.ctx:
                self.ctx.release(currency, amount)
            self.logger.error(f"Submit order failed: {order.side.value} {order.symbol} {order.quantity_str}: {exc}")
            self.notifier.notify(
                f"❌ order submission failed: {order.side.value} {order.symbol} {order.quantity_str}: {exc}"
            )
            return None

        with self.ctx:
            self.ctx.release(currency, amount)
            if order.price:
                self.ctx.apply_fill(
                    order.side,
                    self.market.base_currency,
                    self.market.quote_currency,
                    order.quantity,
                    order.price,
                )
        self.notifier.notify(f"✅ order submitted: {order.side.value} {order.symbol} {order.quantity_str}")
        return res

    @property
    def pending_orders(self) -> int:
        return len(self._pending)

    async def aclose(self) -> None:
        """等待所有延迟提交完成，再等待通知出口发完已排队的消息。"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        notifier_close = getattr(self.notifier, "aclose", None)
        if notifier_close is not None:
            await notifier_close()

    async def run(self, source: KLineSource, max_events: int | None = None) -> int:
        """串行消费行情源，返回处理的事件数。"""
        count = 0
        try:
            async for candle in source.stream(self.symbol, self.cfg.intervals):
                await self.on_kline_closed(candle)
                count += 1
                if max_events is not None and count >= max_events:
                    break
        finally:
            await self.aclose()
        return count
