import math

import pytest

from market.models import Market, Side
from shared.config.schema import VolumeConfig
from sizing.errors import BelowMinNotionalError
from sizing.volume import VolumeCalculator


def _calc(market, base_quantity=0.01, high=11000.0, low=9000.0) -> VolumeCalculator:
    return VolumeCalculator(market, VolumeConfig(base_quantity=base_quantity), historical_high=high, historical_low=low)


def test_change_factor_curve_and_cap(market):
    calc = _calc(market)
    assert calc.historical_range == 2000
    assert calc.change_factor(0) == 1.0
    assert calc.change_factor(100) == pytest.approx(math.exp(100 / 440))
    assert calc.change_factor(-100) == calc.change_factor(100)
    assert calc.change_factor(440) == 2.0  # e > 2，被封顶


def test_side_modifiers(market):
    calc = _calc(market)
    # 买：目标价 9000 * 0.9 = 8100
    assert calc.buy_modifier(8100) == pytest.approx(1.0)
    assert calc.buy_modifier(10000) == pytest.approx(math.exp(-1900 / 720))
    assert calc.buy_modifier(7000) == 1.0  # 封顶
    # 卖：目标价 11000 * 1.2 = 13200
    assert calc.sell_modifier(13200) == pytest.approx(1.0)
    assert calc.sell_modifier(12000) < calc.sell_modifier(12500) < 1.0


def test_without_anchors_factors_degenerate_to_one(market):
    calc = VolumeCalculator(market, VolumeConfig(base_quantity=0.5))
    assert calc.historical_range == 0.0
    assert calc.raw_quantity(100.0, 30.0, Side.BUY) == 0.5
    assert calc.raw_quantity(100.0, 30.0, Side.SELL) == 0.5


def test_anchors_only_expand(market):
    calc = VolumeCalculator(market, VolumeConfig())
    calc.update_anchors(11000, 9000)
    calc.update_anchors(10500, 9500)
    assert (calc.historical_high, calc.historical_low) == (11000, 9000)
    calc.update_anchors(12000, 8000)
    assert (calc.historical_high, calc.historical_low) == (12000, 8000)


@pytest.mark.parametrize("side", [Side.BUY, Side.SELL])
def test_quantity_monotonic_in_change_and_above_min_amount(market, side):
    calc = _calc(market, base_quantity=0.05)
    price = 10000.0
    previous = 0.0
    for change in range(0, 2000, 25):
        q = calc.quantity(price, float(change), side)
        assert q >= previous
        assert q * price >= market.effective_min_amount
        previous = q


def test_quantity_scaled_up_to_min_amount(market):
    calc = _calc(market, base_quantity=0.0001)
    q = calc.quantity(10000.0, 0.0, Side.BUY)
    assert q == pytest.approx(0.001)
    assert q * 10000.0 >= 10.0


def test_quantity_bumped_one_lot_after_truncation(market):
    calc = VolumeCalculator(market, VolumeConfig(base_quantity=0.0001))
    # 10 / 101 = 0.0990099...，截断到 0.0990 后不足 10，需要补到 0.0991
    q = calc.quantity(101.0, 0.0, Side.BUY)
    assert q == pytest.approx(0.0991)
    assert q * 101.0 >= 10.0


def test_quantity_clamped_by_max_amount(market):
    calc = VolumeCalculator(market, VolumeConfig(base_quantity=1.0))
    q = calc.quantity(10000.0, 0.0, Side.BUY, max_amount=500.0)
    assert q == pytest.approx(0.05)
    assert q * 10000.0 <= 500.0 + 1e-9


def test_quantity_clamped_by_market_max_amount():
    market = Market("BTCUSDT", "BTC", "USDT", min_amount=10.0, min_lot=0.0001, quantity_precision=4, max_amount=300.0)
    calc = VolumeCalculator(market, VolumeConfig(base_quantity=1.0))
    q = calc.quantity(10000.0, 0.0, Side.SELL, max_amount=500.0)
    assert q == pytest.approx(0.03)


def test_quantity_truncates_toward_zero(market):
    calc = VolumeCalculator(market, VolumeConfig(base_quantity=0.123456789))
    assert calc.quantity(10000.0, 0.0, Side.BUY) == pytest.approx(0.1234)


def test_min_amount_above_ceiling_fails(market):
    calc = _calc(market)
    with pytest.raises(BelowMinNotionalError):
        calc.quantity(10000.0, 0.0, Side.BUY, max_amount=5.0)


def test_min_amount_above_max_quantity_fails(market):
    calc = _calc(market)
    with pytest.raises(BelowMinNotionalError):
        calc.quantity(10000.0, 0.0, Side.SELL, max_quantity=0.0005)


def test_invalid_price_fails(market):
    with pytest.raises(BelowMinNotionalError):
        _calc(market).quantity(0.0, 10.0, Side.BUY)


def test_curves_saturate_without_overflow(market):
    # 历史区间远小于本次变化：exp 的指数上千
    calc = _calc(market, high=1000.7, low=1000.0)
    assert calc.change_factor(-2000.0) == 2.0
    assert calc.buy_modifier(1.0) == 1.0
    assert calc.sell_modifier(1_000_000.0) == 1.0
    assert calc.buy_modifier(1_000_000.0) == 0.0
    q = calc.quantity(1000.0, -2000.0, Side.BUY)
    assert q * 1000.0 >= market.effective_min_amount
