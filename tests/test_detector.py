import pytest
from pydantic import ValidationError

from conftest import make_candle
from market.window import CandleWindow
from strategy.detector import KLineDetector


def test_large_drop_triggers_detector():
    window = CandleWindow([make_candle(100, 105, 98, 102, idx=0), make_candle(102, 103, 90, 101, idx=1)])
    det = KLineDetector(interval="1m", min_max_price_change=5)
    res = det.detect(window[-1], window)
    assert res.ok
    assert res.view is window[-1]
    assert res.reason == ""


def test_below_min_change_has_no_reason():
    det = KLineDetector(interval="1m", min_max_price_change=5)
    res = det.detect(make_candle(100, 101, 99, 100.5))
    assert not res.ok
    assert res.reason == ""


def test_exceeded_max_change():
    det = KLineDetector(interval="1m", min_max_price_change=5, max_max_price_change=15)
    res = det.detect(make_candle(100, 120, 99, 118))
    assert not res.ok
    assert res.reason == "exceeded max price change 20.00 > 15.00"


def test_thin_kline_rejected():
    det = KLineDetector(interval="1m", min_max_price_change=5, enable_min_thickness=True, min_thickness=0.3)
    res = det.detect(make_candle(100, 110, 90, 101))
    assert not res.ok
    assert res.reason == "kline too thin. 0.0500 < min kline thickness 0.3000"


def test_upper_shadow_ratio_rejected():
    det = KLineDetector(interval="1m", min_max_price_change=5, enable_max_shadow_ratio=True, max_shadow_ratio=0.3)
    res = det.detect(make_candle(100, 110, 99, 102))
    assert not res.ok
    assert res.reason.startswith("kline upper shadow ratio too high. 0.7273 > 0.3000")


def test_lower_shadow_ratio_rejected():
    det = KLineDetector(interval="1m", min_max_price_change=5, enable_max_shadow_ratio=True, max_shadow_ratio=0.3)
    res = det.detect(make_candle(100, 101, 90, 98))
    assert not res.ok
    assert res.reason.startswith("kline lower shadow ratio too high. 0.7273 > 0.3000")


def test_bounce_up_rejected():
    det = KLineDetector(interval="1m", min_max_price_change=5)
    res = det.detect(make_candle(100, 102, 90, 101))
    assert not res.ok
    assert res.reason == "bounce up, do not sell, kline mid: 96.0000"


def test_bounce_down_rejected():
    det = KLineDetector(interval="1m", min_max_price_change=5)
    res = det.detect(make_candle(100, 110, 98, 99))
    assert not res.ok
    assert res.reason == "bounce down, do not buy, kline mid: 104.0000"


@pytest.fixture
def rising_window():
    return CandleWindow(
        [
            make_candle(100, 102, 99, 101, idx=0),
            make_candle(101, 104, 100, 103, idx=1),
            make_candle(103, 112, 102, 111, idx=2),
        ]
    )


def test_look_back_window_accumulates_change(rising_window):
    last = rising_window[-1]
    single = KLineDetector(interval="1m", min_max_price_change=10)
    assert not single.detect(last, rising_window).ok

    det = KLineDetector(interval="1m", min_max_price_change=10, enable_look_back=True, look_back_frames=3)
    res = det.detect(last, rising_window)
    assert res.ok
    assert isinstance(res.view, CandleWindow)
    assert len(res.view) == 3
    assert res.view.open == 100
    assert res.view.high == 112


def test_look_back_falls_back_to_single_kline(rising_window):
    det = KLineDetector(interval="1m", min_max_price_change=10, enable_look_back=True, look_back_frames=5)
    res = det.detect(rising_window[-1], rising_window)
    assert not res.ok
    assert res.view is rising_window[-1]


def test_min_profit_tick_for_buy():
    det = KLineDetector(interval="1m", min_max_price_change=5, min_profit_price_tick=5)
    k = make_candle(100, 100.5, 90, 91)
    res = det.detect(k, average_price=95)
    assert not res.ok
    assert res.reason == "price 91.0000 is greater than the average price - min profit tick 90.0000"
    assert det.detect(k, average_price=100).ok


def test_min_profit_tick_for_sell():
    det = KLineDetector(interval="1m", min_max_price_change=5, min_profit_price_tick=5)
    k = make_candle(100, 110.5, 99.5, 110)
    res = det.detect(k, average_price=108)
    assert not res.ok
    assert res.reason == "price 110.0000 is less than the average price + min profit tick 113.0000"
    assert det.detect(k, average_price=100).ok


def test_min_profit_tick_skipped_without_average_price():
    det = KLineDetector(interval="1m", min_max_price_change=5, min_profit_price_tick=5)
    k = make_candle(100, 110.5, 99.5, 110)
    assert det.detect(k).ok
    assert det.detect(k, average_price=0.0).ok


def test_detector_is_immutable():
    det = KLineDetector(interval="1m", min_max_price_change=5)
    with pytest.raises(ValidationError):
        det.min_max_price_change = 1


def test_look_back_requires_frames():
    with pytest.raises(ValidationError):
        KLineDetector(interval="1m", enable_look_back=True, look_back_frames=0)
    with pytest.raises(ValidationError):
        KLineDetector(interval="1m", unknown_field=1)


def test_describe_and_attachment():
    det = KLineDetector(interval="1m", min_max_price_change=5)
    assert str(det) == "Detector 1m MaxPriceChange 5.00 ~ NO LIMIT"

    det = KLineDetector(
        name="fast",
        interval="5m",
        min_max_price_change=5,
        max_max_price_change=20,
        enable_min_thickness=True,
        min_thickness=0.5,
        enable_look_back=True,
        look_back_frames=3,
    )
    assert det.describe() == "Detector fast 5m x 3 MaxPriceChange 5.00 ~ 20.00 [MinThickness: 0.5000]"
    att = det.attachment()
    assert att["title"] == det.describe()
    assert [f["title"] for f in att["fields"]] == ["Interval", "MinThickness", "LookBackFrames"]
