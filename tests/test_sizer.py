import pytest

from broker.base import InventoryLot, TradingContext
from market.models import Market, Side
from shared.config.schema import SizingConfig, VolumeConfig
from sizing.errors import InsufficientBalanceError, NoProfitableInventoryError
from sizing.sizer import size_order
from sizing.volume import VolumeCalculator


@pytest.fixture
def market_100():
    return Market(
        symbol="BTCUSDT",
        base_currency="BTC",
        quote_currency="USDT",
        min_quantity=0.0001,
        min_amount=100.0,
        min_lot=0.0001,
        quantity_precision=4,
        price_precision=2,
    )


def test_sell_without_base_balance_fails(market_100):
    ctx = TradingContext(balances={"USDT": 10000.0, "BTC": 0.0})
    calc = VolumeCalculator(market_100, VolumeConfig(base_quantity=0.01))
    with pytest.raises(InsufficientBalanceError):
        size_order(calc, ctx, SizingConfig(), price=10000.0, change=50.0, side=Side.SELL)
    assert ctx.held == {}


def test_buy_uses_balance_above_reserve(market_100):
    ctx = TradingContext(balances={"USDT": 2500.0})
    calc = VolumeCalculator(market_100, VolumeConfig(base_quantity=1.0))
    order = size_order(
        calc, ctx, SizingConfig(quote_reserve=2000.0), price=10000.0, change=-80.0, side=Side.BUY
    )
    notional = order.quantity * 10000.0
    assert 100.0 <= notional <= 500.0 + 1e-9
    assert order.side == Side.BUY
    assert order.type == "market"
    assert order.quantity_str == market_100.format_quantity(order.quantity)
    # 已占用资金，可用余额减少
    assert ctx.held["USDT"] == pytest.approx(notional)
    assert ctx.available("USDT") == pytest.approx(2500.0 - notional)


def test_buy_below_min_amount_after_reserve_fails(market_100):
    ctx = TradingContext(balances={"USDT": 2050.0})
    calc = VolumeCalculator(market_100, VolumeConfig(base_quantity=1.0))
    with pytest.raises(InsufficientBalanceError):
        size_order(calc, ctx, SizingConfig(quote_reserve=2000.0), price=10000.0, change=-80.0, side=Side.BUY)


def test_sell_clamped_to_available_base(market):
    ctx = TradingContext(balances={"BTC": 0.005})
    calc = VolumeCalculator(market, VolumeConfig(base_quantity=1.0))
    order = size_order(calc, ctx, SizingConfig(), price=10000.0, change=80.0, side=Side.SELL)
    assert order.quantity == pytest.approx(0.005)
    assert ctx.available("BTC") == pytest.approx(0.0)


def test_sell_limited_to_profitable_inventory(market_100):
    ctx = TradingContext(
        balances={"BTC": 0.03},
        lots=[InventoryLot(price=9000.0, quantity=0.01), InventoryLot(price=10100.0, quantity=0.02)],
    )
    calc = VolumeCalculator(market_100, VolumeConfig(base_quantity=1.0))
    cfg = SizingConfig(fee_rate=0.001, min_profit_spread=50.0)
    order = size_order(calc, ctx, cfg, price=10000.0, change=80.0, side=Side.SELL)
    # 目标价 10000 - 10 - 50 = 9940，只有 9000 那批可卖
    assert order.quantity == pytest.approx(0.01)


def test_sell_without_profitable_inventory_fails(market_100):
    ctx = TradingContext(balances={"BTC": 0.03}, lots=[InventoryLot(price=10100.0, quantity=0.03)])
    calc = VolumeCalculator(market_100, VolumeConfig(base_quantity=1.0))
    cfg = SizingConfig(min_profit_spread=50.0)
    with pytest.raises(NoProfitableInventoryError):
        size_order(calc, ctx, cfg, price=10000.0, change=80.0, side=Side.SELL)


def test_held_funds_are_not_reused(market_100):
    ctx = TradingContext(balances={"USDT": 2500.0})
    calc = VolumeCalculator(market_100, VolumeConfig(base_quantity=1.0))
    cfg = SizingConfig(quote_reserve=2000.0)
    size_order(calc, ctx, cfg, price=10000.0, change=-80.0, side=Side.BUY)
    # 第一笔占满 500，第二笔只剩保留额
    with pytest.raises(InsufficientBalanceError):
        size_order(calc, ctx, cfg, price=10000.0, change=-80.0, side=Side.BUY)


def test_pending_sell_reserves_profitable_inventory(market_100):
    ctx = TradingContext(
        balances={"BTC": 0.03},
        lots=[InventoryLot(price=9000.0, quantity=0.01), InventoryLot(price=10100.0, quantity=0.02)],
    )
    calc = VolumeCalculator(market_100, VolumeConfig(base_quantity=1.0))
    cfg = SizingConfig(fee_rate=0.001, min_profit_spread=50.0)

    first = size_order(calc, ctx, cfg, price=10000.0, change=80.0, side=Side.SELL)
    assert first.quantity == pytest.approx(0.01)
    # 第一笔还没提交，同一批低成本库存不能再卖一次
    with pytest.raises(NoProfitableInventoryError):
        size_order(calc, ctx, cfg, price=10000.0, change=80.0, side=Side.SELL)

    ctx.release("BTC", first.quantity)
    again = size_order(calc, ctx, cfg, price=10000.0, change=80.0, side=Side.SELL)
    assert again.quantity == pytest.approx(0.01)
