"""K 线检测器：一条由配置给定阈值的规则。

检测器在启动时由配置构建，运行期不可变；跨事件无状态。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from market import features
from market.models import Candle
from market.window import CandleWindow

CandleOrWindow = Union[Candle, CandleWindow]


@dataclass(frozen=True)
class Detection:
    """一次检测的结果。

    Attributes
    ----------
    detector:
        产生结果的检测器。
    view:
        实际参与计算的 K 线或回看窗口。
    ok:
        是否命中。
    reason:
        未命中的原因（为空表示无需通知）；命中时通常为空。
    """
    detector: "KLineDetector"
    view: CandleOrWindow
    ok: bool
    reason: str = ""


class KLineDetector(BaseModel):
    """检测器配置。

    Notes
    -----
    - `max_max_price_change` / `min_profit_price_tick` 为 0 表示不启用。
    - 启用回看且窗口长度足够时，对最近 `look_back_frames` 根组成的窗口做判断，
      否则退化为只看当前 K 线。
    """

    name: str = ""
    interval: str

    min_max_price_change: float = Field(default=0.0, ge=0)
    max_max_price_change: float = Field(default=0.0, ge=0)

    enable_min_thickness: bool = False
    min_thickness: float = Field(default=0.0, ge=0, le=1)

    enable_max_shadow_ratio: bool = False
    max_shadow_ratio: float = Field(default=0.0, ge=0, le=1)

    enable_look_back: bool = False
    look_back_frames: int = Field(default=0, ge=0)

    min_profit_price_tick: float = Field(default=0.0, ge=0)

    delay_ms: int = Field(default=0, ge=0)
    stop: bool = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_look_back(self) -> "KLineDetector":
        if self.enable_look_back and self.look_back_frames < 1:
            raise ValueError("look_back_frames must be >= 1 when enable_look_back is set")
        return self

    def view(self, candle: Candle, window: CandleWindow | None) -> CandleOrWindow:
        """构建评估视图：当前 K 线，或回看窗口的尾部切片。"""
        if self.enable_look_back and window is not None and len(window) >= self.look_back_frames:
            return window.tail(self.look_back_frames)
        return candle

    def detect(
        self,
        candle: Candle,
        window: CandleWindow | None = None,
        average_price: float | None = None,
    ) -> Detection:
        """按固定顺序（便宜的检查在前）评估规则。

        Parameters
        ----------
        candle:
            刚收盘的 K 线。
        window:
            该 interval 的窗口（已包含 candle）。
        average_price:
            当前持仓均价；为空或 <= 0 时跳过最小利润 tick 检查。
        """
        view = self.view(candle, window)
        max_change = abs(features.max_change(view))

        if max_change < self.min_max_price_change:
            return Detection(self, view, False)

        if self.max_max_price_change > 0 and max_change > self.max_max_price_change:
            return Detection(
                self, view, False,
                f"exceeded max price change {max_change:.2f} > {self.max_max_price_change:.2f}",
            )

        if self.enable_min_thickness:
            thickness = features.thickness(view)
            if thickness < self.min_thickness:
                return Detection(
                    self, view, False,
                    f"kline too thin. {thickness:.4f} < min kline thickness {self.min_thickness:.4f}",
                )

        trend = features.trend(view)
        if self.enable_max_shadow_ratio:
            if trend > 0:
                ratio = features.upper_shadow_ratio(view)
                if ratio > self.max_shadow_ratio:
                    return Detection(
                        self, view, False,
                        f"kline upper shadow ratio too high. {ratio:.4f} > {self.max_shadow_ratio:.4f} (MaxShadowRatio)",
                    )
            elif trend < 0:
                ratio = features.lower_shadow_ratio(view)
                if ratio > self.max_shadow_ratio:
                    return Detection(
                        self, view, False,
                        f"kline lower shadow ratio too high. {ratio:.4f} > {self.max_shadow_ratio:.4f} (MaxShadowRatio)",
                    )

        if trend > 0 and features.bounce_up(view):
            return Detection(self, view, False, f"bounce up, do not sell, kline mid: {features.mid(view):.4f}")
        if trend < 0 and features.bounce_down(view):
            return Detection(self, view, False, f"bounce down, do not buy, kline mid: {features.mid(view):.4f}")

        if self.min_profit_price_tick > 0 and average_price is not None and average_price > 0:
            close = view.close
            # 买：收盘价要低于 均价 - tick；卖：收盘价要高于 均价 + tick
            if trend < 0 and close > average_price - self.min_profit_price_tick:
                return Detection(
                    self, view, False,
                    f"price {close:.4f} is greater than the average price - min profit tick "
                    f"{average_price - self.min_profit_price_tick:.4f}",
                )
            if trend > 0 and close < average_price + self.min_profit_price_tick:
                return Detection(
                    self, view, False,
                    f"price {close:.4f} is less than the average price + min profit tick "
                    f"{average_price + self.min_profit_price_tick:.4f}",
                )

        return Detection(self, view, True)

    def describe(self) -> str:
        limit = f"{self.max_max_price_change:.2f}" if self.max_max_price_change > 0 else "NO LIMIT"
        name = f"Detector {self.name + ' ' if self.name else ''}{self.interval}"
        if self.enable_look_back:
            name += f" x {self.look_back_frames}"
        name += f" MaxPriceChange {self.min_max_price_change:.2f} ~ {limit}"
        if self.enable_min_thickness:
            name += f" [MinThickness: {self.min_thickness:.4f}]"
        if self.enable_max_shadow_ratio:
            name += f" [MaxShadowRatio: {self.max_shadow_ratio:.4f}]"
        return name

    def __str__(self) -> str:
        return self.describe()

    def attachment(self) -> dict[str, Any]:
        """Slack 风格的附件（title + fields）。"""
        fields = [{"title": "Interval", "value": self.interval, "short": True}]
        if self.enable_min_thickness and self.min_thickness > 0:
            fields.append({"title": "MinThickness", "value": f"{self.min_thickness:.4f}", "short": True})
        if self.enable_max_shadow_ratio and self.max_shadow_ratio > 0:
            fields.append({"title": "MaxShadowRatio", "value": f"{self.max_shadow_ratio:.4f}", "short": True})
        if self.enable_look_back:
            fields.append({"title": "LookBackFrames", "value": str(self.look_back_frames), "short": True})
        return {"title": self.describe(), "fields": fields}
