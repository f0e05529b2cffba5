"""检测器评估引擎：按配置顺序对每根收盘 K 线评估检测器列表。"""

from __future__ import annotations

from typing import Iterable, Iterator

from market.models import Candle
from market.window import CandleWindow
from strategy.detector import Detection, KLineDetector


class DetectorEngine:
    """有序检测器列表。

    - interval 不匹配的检测器直接跳过，不产生结果；
    - `stop=True` 的检测器命中后，本事件不再评估后续检测器（高优先级规则压制低优先级规则）。
    """

    def __init__(self, detectors: Iterable[KLineDetector]):
        self.detectors: tuple[KLineDetector, ...] = tuple(detectors)

    def __len__(self) -> int:
        return len(self.detectors)

    def intervals(self) -> list[str]:
        """检测器用到的 interval（保持首次出现顺序）。"""
        return list(dict.fromkeys(d.interval for d in self.detectors))

    def iter_detections(
        self,
        candle: Candle,
        window: CandleWindow | None = None,
        average_price: float | None = None,
    ) -> Iterator[Detection]:
        """逐个产出检测结果；调用方可以在处理完一个命中结果后再拉取下一个。"""
        for detector in self.detectors:
            if detector.interval != candle.interval:
                continue
            detection = detector.detect(candle, window, average_price)
            yield detection
            if detection.ok and detector.stop:
                return

    def evaluate(
        self,
        candle: Candle,
        window: CandleWindow | None = None,
        average_price: float | None = None,
    ) -> list[Detection]:
        return list(self.iter_detections(candle, window, average_price))
