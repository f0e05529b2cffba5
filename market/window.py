"""K 线窗口：按时间升序、有界的 Candle 序列。"""

from __future__ import annotations

from bisect import bisect_right
from typing import Iterable, Iterator, Sequence, overload

from market.models import Candle


class EmptyWindowError(ValueError):
    """在空窗口上做聚合（high/low/open/close）。"""


class CandleWindow(Sequence[Candle]):
    """同一 interval 的 K 线窗口。

    约定
    ----
    - 插入顺序即时间顺序；同一 start_ts 只保留一根（后到的覆盖先到的）。
    - `tail()` / `take()` 返回新的窗口，不修改源窗口。
    - 聚合属性（open/high/low/close）要求窗口非空，否则抛 `EmptyWindowError`，
      调用方需要先判断 `len(window) > 0`。
    """

    def __init__(self, candles: Iterable[Candle] | None = None):
        self._candles: list[Candle] = []
        for candle in candles or ():
            self.add(candle)

    @overload
    def __getitem__(self, index: int) -> Candle: ...

    @overload
    def __getitem__(self, index: slice) -> "CandleWindow": ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return CandleWindow._wrap(self._candles[index])
        return self._candles[index]

    def __len__(self) -> int:
        return len(self._candles)

    def __iter__(self) -> Iterator[Candle]:
        return iter(self._candles)

    def __repr__(self) -> str:
        if not self._candles:
            return "CandleWindow([])"
        first, last = self._candles[0], self._candles[-1]
        return f"CandleWindow({first.interval} x {len(self)}: {first.start_ts} ~ {last.end_ts})"

    @classmethod
    def _wrap(cls, candles: list[Candle]) -> "CandleWindow":
        # 切片结果本身已有序、无重复，直接挂上去
        window = cls()
        window._candles = list(candles)
        return window

    def add(self, candle: Candle) -> None:
        """追加一根 K 线。

        - 与末尾 start_ts 相同：原地替换（未收盘 K 线先到、收盘事件后到）。
        - 比末尾更新：追加到尾部（正常流）。
        - 比末尾更旧：按时间插入；若已有同 start_ts 则替换。
        """
        candles = self._candles
        if not candles or candle.start_ts > candles[-1].start_ts:
            candles.append(candle)
            return
        if candle.start_ts == candles[-1].start_ts:
            candles[-1] = candle
            return

        keys = [c.start_ts for c in candles]
        pos = bisect_right(keys, candle.start_ts)
        if pos > 0 and keys[pos - 1] == candle.start_ts:
            candles[pos - 1] = candle
        else:
            candles.insert(pos, candle)

    def truncate(self, size: int) -> None:
        """只保留最近 size 根（FIFO 淘汰最旧的）；size <= 0 表示不限长。"""
        if size <= 0:
            return
        overflow = len(self._candles) - size
        if overflow > 0:
            del self._candles[:overflow]

    def tail(self, size: int) -> "CandleWindow":
        """最近 min(size, len) 根，返回新窗口。"""
        if size <= 0:
            return CandleWindow()
        return CandleWindow._wrap(self._candles[-size:])

    def take(self, size: int) -> "CandleWindow":
        """最早的 min(size, len) 根，返回新窗口。"""
        if size <= 0:
            return CandleWindow()
        return CandleWindow._wrap(self._candles[:size])

    def _require(self) -> Sequence[Candle]:
        if not self._candles:
            raise EmptyWindowError("empty candle window")
        return self._candles

    @property
    def interval(self) -> str | None:
        return self._candles[0].interval if self._candles else None

    @property
    def open(self) -> float:
        return self._require()[0].open

    @property
    def close(self) -> float:
        return self._require()[-1].close

    @property
    def high(self) -> float:
        return max(c.high for c in self._require())

    @property
    def low(self) -> float:
        return min(c.low for c in self._require())

    def all_rise(self) -> bool:
        """窗口内每根 K 线都收涨（空窗口为 False）。"""
        return bool(self._candles) and all(c.close > c.open for c in self._candles)

    def all_drop(self) -> bool:
        """窗口内每根 K 线都收跌（空窗口为 False）。"""
        return bool(self._candles) and all(c.close < c.open for c in self._candles)

    def closes(self) -> list[float]:
        return [c.close for c in self._candles]

    def snapshot(self) -> dict:
        """通知附件用的窗口快照。"""
        candles = self._require()
        return {
            "symbol": candles[0].symbol,
            "interval": candles[0].interval,
            "frames": len(candles),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "start_ts": candles[0].start_ts.isoformat(),
            "end_ts": candles[-1].end_ts.isoformat(),
        }
