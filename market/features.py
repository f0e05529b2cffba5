"""K 线特征：趋势、振幅、实体厚度、影线比例、反弹识别。

所有函数同时适用于单根 `Candle` 与 `CandleWindow`（两者都暴露 open/high/low/close），
窗口视作一根“合成 K 线”：open 取第一根，close 取最后一根，high/low 取极值。

退化输入（high == low，或 OHLC 关系被上游破坏）只会返回 0 / 被裁剪到 [0, 1] 的值，
不会抛异常。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

# 反向影线占整体振幅的比例达到该值即视为“反弹”（假突破）
BOUNCE_SHADOW_FRACTION = 0.5


class CandleLike(Protocol):
    @property
    def open(self) -> float: ...

    @property
    def high(self) -> float: ...

    @property
    def low(self) -> float: ...

    @property
    def close(self) -> float: ...


def _clamp_ratio(value: float) -> float:
    if value != value:  # NaN
        return 0.0
    return min(1.0, max(0.0, value))


def price_range(k: CandleLike) -> float:
    return k.high - k.low


def change(k: CandleLike) -> float:
    """净变化 close - open（带符号）。"""
    return k.close - k.open


def trend(k: CandleLike) -> int:
    """净变化的符号：1 上涨，-1 下跌，0 持平。"""
    delta = change(k)
    if delta > 0:
        return 1
    if delta < 0:
        return -1
    return 0


def max_change(k: CandleLike) -> float:
    """相对起点 open 的最大带符号偏离。

    上方偏离 high - open 与下方偏离 low - open 中绝对值更大的一个；
    相等时取上方偏离。
    """
    up = k.high - k.open
    down = k.low - k.open
    return up if abs(up) >= abs(down) else down


def thickness(k: CandleLike) -> float:
    """实体占整体振幅的比例 |close - open| / (high - low)。"""
    rng = price_range(k)
    if rng <= 0:
        return 0.0
    return _clamp_ratio(abs(change(k)) / rng)


def upper_shadow_height(k: CandleLike) -> float:
    return max(0.0, k.high - max(k.open, k.close))


def lower_shadow_height(k: CandleLike) -> float:
    return max(0.0, min(k.open, k.close) - k.low)


def upper_shadow_ratio(k: CandleLike) -> float:
    rng = price_range(k)
    if rng <= 0:
        return 0.0
    return _clamp_ratio(upper_shadow_height(k) / rng)


def lower_shadow_ratio(k: CandleLike) -> float:
    rng = price_range(k)
    if rng <= 0:
        return 0.0
    return _clamp_ratio(lower_shadow_height(k) / rng)


def bounce_up(k: CandleLike) -> bool:
    """上涨趋势中，先向下刺破实体下沿再收回（向下假突破）。"""
    return trend(k) > 0 and lower_shadow_ratio(k) >= BOUNCE_SHADOW_FRACTION


def bounce_down(k: CandleLike) -> bool:
    """下跌趋势中，先向上刺破实体上沿再收回（向上假突破）。"""
    return trend(k) < 0 and upper_shadow_ratio(k) >= BOUNCE_SHADOW_FRACTION


def mid(k: CandleLike) -> float:
    return (k.high + k.low) / 2


@dataclass(frozen=True)
class FeatureView:
    """对单根 K 线或窗口的一次性只读特征投影（不持久化）。"""
    open: float
    high: float
    low: float
    close: float
    trend: int
    change: float
    max_change: float
    thickness: float
    upper_shadow_ratio: float
    lower_shadow_ratio: float
    bounce_up: bool
    bounce_down: bool
    mid: float

    @classmethod
    def of(cls, k: CandleLike) -> "FeatureView":
        return cls(
            open=k.open,
            high=k.high,
            low=k.low,
            close=k.close,
            trend=trend(k),
            change=change(k),
            max_change=max_change(k),
            thickness=thickness(k),
            upper_shadow_ratio=upper_shadow_ratio(k),
            lower_shadow_ratio=lower_shadow_ratio(k),
            bounce_up=bounce_up(k),
            bounce_down=bounce_down(k),
            mid=mid(k),
        )
